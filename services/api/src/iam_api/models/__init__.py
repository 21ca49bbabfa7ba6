"""ORM 模型导出集合。"""

from iam_api.models.identity import Role, User, UserRole
from iam_api.models.menu import MenuItem
from iam_api.models.permission import Permission, RolePermission

__all__ = [
    "MenuItem",
    "Permission",
    "Role",
    "RolePermission",
    "User",
    "UserRole",
]
