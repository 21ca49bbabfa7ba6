"""路由模块导出集合。"""

from . import access, health, menu, roles

__all__ = [
    "access",
    "health",
    "menu",
    "roles",
]
