"""领域枚举定义。"""

from enum import IntEnum, StrEnum


class RecordStatus(IntEnum):
    """全部实体共享的生命周期状态。

    只有 ACTIVE 记录参与授权判断。
    """

    DELETED = -1  # 逻辑删除，仅用于审计与保留。
    INACTIVE = 0  # 已停用，不再参与权限判断。
    ACTIVE = 1  # 正常生效。
    PENDING = 2  # 待审批或待激活。
    SUSPENDED = 3  # 临时冻结。

    @property
    def is_active(self) -> bool:
        return self is RecordStatus.ACTIVE


class PermissionType(StrEnum):
    """权限点类型。"""

    PAGE = "PAGE"  # 页面/路由访问权限，通常绑定 route 或 menu_id。
    ACTION = "ACTION"  # 页面内动作权限，通常由 resource + action 组成。


class RouteResolutionSource(StrEnum):
    """路由命中权限的来源。"""

    PERMISSION = "permission"  # 权限点直接绑定路由。
    MENU_ITEM = "menu_item"  # 菜单项绑定路由且挂接权限点。
    MENU_TREE = "menu_tree"  # 菜单嵌套结构（分栏/子菜单/子节点）中命中。


class AccessDenyReason(StrEnum):
    """访问拒绝原因。"""

    ROUTE_NOT_FOUND = "route_not_found"  # 路由未被任何权限点保护，默认拒绝。
    PERMISSION_INACTIVE = "permission_inactive"  # 命中的权限点非 ACTIVE。
    AUTHENTICATION_REQUIRED = "authentication_required"  # 非公开路由但无调用方身份。
    PERMISSION_MISSING = "permission_missing"  # 调用方不具备所需权限。
