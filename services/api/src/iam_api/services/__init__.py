"""服务层能力导出集合。"""

from iam_api.services.assignments import (
    assign_role_permissions,
    assign_user_role,
    revoke_role_permissions,
    revoke_user_role,
)
from iam_api.services.guard import AccessDecision, enforce_permissions
from iam_api.services.menu import (
    MenuArena,
    MenuEntry,
    MenuGroup,
    MenuLink,
    MenuNode,
    MenuResult,
    build_menu_for_role,
    build_menu_for_user,
    filter_menu,
    list_public_menu,
    load_menu_arena,
)
from iam_api.services.permission_cache import (
    EffectivePermissionCache,
    apply_pending_invalidations,
    get_permission_cache,
    mark_permissions_changed,
)
from iam_api.services.permissions import (
    can_execute_action,
    get_effective_permission_codes,
    get_effective_permissions,
    get_role_permissions,
    has_all_permissions,
    has_any_permission,
    has_permission,
    matches_permission_code,
    user_has_permission,
)
from iam_api.services.route_access import (
    RouteAccessDecision,
    RouteResolution,
    can_access_route,
    check_route_access,
    normalize_route,
    resolve_permission_for_route,
)

__all__ = [
    "matches_permission_code",
    "user_has_permission",
    "get_effective_permissions",
    "get_effective_permission_codes",
    "get_role_permissions",
    "has_permission",
    "has_any_permission",
    "has_all_permissions",
    "can_execute_action",
    "EffectivePermissionCache",
    "apply_pending_invalidations",
    "get_permission_cache",
    "mark_permissions_changed",
    "normalize_route",
    "resolve_permission_for_route",
    "RouteResolution",
    "RouteAccessDecision",
    "can_access_route",
    "check_route_access",
    "MenuArena",
    "MenuNode",
    "MenuLink",
    "MenuGroup",
    "MenuEntry",
    "MenuResult",
    "load_menu_arena",
    "filter_menu",
    "build_menu_for_user",
    "build_menu_for_role",
    "list_public_menu",
    "AccessDecision",
    "enforce_permissions",
    "assign_role_permissions",
    "revoke_role_permissions",
    "assign_user_role",
    "revoke_user_role",
]
