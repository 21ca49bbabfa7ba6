"""权限点与角色授权模型。"""

from uuid import UUID

from sqlalchemy import Boolean, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from iam_api.models.base import Base, RecordStatusMixin, TimestampMixin, UUIDPrimaryKeyMixin
from iam_api.models.enums import PermissionType


class Permission(Base, UUIDPrimaryKeyMixin, TimestampMixin, RecordStatusMixin):
    """权限点实体。

    说明：
    1. code 全局唯一，被角色引用后不可再修改。
    2. 以 `*` 结尾的编码为通配权限，按字面前缀匹配。
    3. PAGE 类型通常绑定 route/menu_id，ACTION 类型通常绑定 resource/action。
    """

    __tablename__ = "permissions"

    # 权限编码（如 users.create / security.*）。
    code: Mapped[str] = mapped_column(String(128), nullable=False, unique=True, index=True)
    # 权限展示名。
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    # 权限类型（PAGE/ACTION）。
    type: Mapped[str] = mapped_column(String(16), nullable=False, default=PermissionType.PAGE)
    # 资源标识（仅 ACTION）。
    resource: Mapped[str | None] = mapped_column(String(64))
    # 动作标识（仅 ACTION）。
    action: Mapped[str | None] = mapped_column(String(64))
    # 前端路由（仅 PAGE）。
    route: Mapped[str | None] = mapped_column(String(256), index=True)
    # 关联菜单标识（仅 PAGE）。
    menu_id: Mapped[str | None] = mapped_column(String(64))
    description: Mapped[str | None] = mapped_column(Text)
    # 公开权限点无需身份即可访问。
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # 系统权限点禁止删除与改名。
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<Permission(code='{self.code}', status={self.status})>"


class RolePermission(Base, UUIDPrimaryKeyMixin, TimestampMixin, RecordStatusMixin):
    """角色-权限点关联。

    同一 (role_id, permission_id) 至多一条 ACTIVE 记录，由授权写入侧复用已有记录保证。
    """

    __tablename__ = "role_permissions"
    __table_args__ = (UniqueConstraint("role_id", "permission_id", name="uk_role_permission"),)

    role_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    permission_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
