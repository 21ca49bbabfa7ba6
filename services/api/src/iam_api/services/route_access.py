"""前端路由访问判定。

路由解析顺序：
1. 权限点直接绑定的路由（仅 ACTIVE 权限点）。
2. 菜单项绑定的路由，且菜单项挂接了权限点（权限点状态在判定阶段校验）。
3. 菜单树深度优先查找：自身路由 → 分栏链接 → 子菜单链接 → 子节点，命中后按权限码查 ACTIVE 权限点。

未知路由不抛异常，以 RouteResolution.found 为 False 表达，判定结果为拒绝。
"""

from dataclasses import dataclass
import logging
from urllib.parse import unquote, urlsplit
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from iam_api.exceptions import translate_store_errors
from iam_api.models.enums import AccessDenyReason, RecordStatus, RouteResolutionSource
from iam_api.models.menu import MenuItem
from iam_api.models.permission import Permission
from iam_api.services.menu import MenuArena, load_menu_arena
from iam_api.services.permissions import get_effective_permission_codes, user_has_permission

logger = logging.getLogger("iam_api.route_access")


@dataclass(frozen=True)
class RouteResolution:
    """路由解析结果。"""

    route: str
    permission: Permission | None = None
    source: RouteResolutionSource | None = None

    @property
    def found(self) -> bool:
        return self.permission is not None


@dataclass(frozen=True)
class RouteAccessDecision:
    """路由访问判定结果。"""

    route: str
    allowed: bool
    reason: AccessDenyReason | None = None
    permission_code: str | None = None


def normalize_route(route: str | None) -> str:
    """规范化前端路由。

    示例：`https://app.local/security/users?tab=2#x` -> `/security/users`。
    """
    cleaned = (route or "").strip()
    # 先截掉查询串与片段再解码，编码后的 `%3F` `%23` 属于路径本身。
    if cleaned.startswith(("http://", "https://")):
        try:
            cleaned = urlsplit(cleaned).path
        except ValueError:
            pass
    cleaned = cleaned.split("?", 1)[0].split("#", 1)[0]

    try:
        cleaned = unquote(cleaned, errors="strict")
    except UnicodeDecodeError:
        # 解码失败时保留原始路由。
        pass
    return "/" + cleaned.lstrip("/")


def _find_permission_code_in_arena(arena: MenuArena, route: str) -> str | None:
    for node in arena.walk():
        if node.route == route and node.permission_code:
            return node.permission_code
        for group in node.columns:
            for link in group.items:
                if link.route == route and link.permission_code:
                    return link.permission_code
        for link in node.links:
            if link.route == route and link.permission_code:
                return link.permission_code
    return None


def _active_permission_by_code(db: Session, code: str) -> Permission | None:
    stmt = select(Permission).where(Permission.code == code).where(Permission.status == RecordStatus.ACTIVE)
    return db.execute(stmt).scalar_one_or_none()


def resolve_permission_for_route(db: Session, route: str) -> RouteResolution:
    """解析保护指定路由的权限点，route 需已规范化。"""
    with translate_store_errors("resolve_permission_for_route"):
        permission = db.execute(
            select(Permission)
            .where(Permission.route == route)
            .where(Permission.status == RecordStatus.ACTIVE)
            .order_by(Permission.code.asc())
            .limit(1)
        ).scalar_one_or_none()
        if permission is not None:
            return RouteResolution(route=route, permission=permission, source=RouteResolutionSource.PERMISSION)

        menu_item = db.execute(
            select(MenuItem)
            .where(MenuItem.route == route)
            .where(MenuItem.status == RecordStatus.ACTIVE)
            .where(MenuItem.permission_id.is_not(None))
            .order_by(MenuItem.order.asc(), MenuItem.menu_id.asc())
            .limit(1)
        ).scalar_one_or_none()
        if menu_item is not None:
            bound = db.execute(select(Permission).where(Permission.id == menu_item.permission_id)).scalar_one_or_none()
            if bound is not None:
                return RouteResolution(route=route, permission=bound, source=RouteResolutionSource.MENU_ITEM)

    code = _find_permission_code_in_arena(load_menu_arena(db), route)
    if code is None:
        return RouteResolution(route=route)

    with translate_store_errors("resolve_permission_for_route"):
        permission = _active_permission_by_code(db, code)
    if permission is None:
        return RouteResolution(route=route)
    return RouteResolution(route=route, permission=permission, source=RouteResolutionSource.MENU_TREE)


def check_route_access(db: Session, user_id: UUID | None, route: str) -> RouteAccessDecision:
    """判定调用方能否访问前端路由（匿名调用方仅可访问公开路由）。"""
    normalized = normalize_route(route)
    resolution = resolve_permission_for_route(db, normalized)
    permission = resolution.permission

    if permission is None:
        decision = RouteAccessDecision(route=normalized, allowed=False, reason=AccessDenyReason.ROUTE_NOT_FOUND)
    elif permission.status != RecordStatus.ACTIVE:
        decision = RouteAccessDecision(
            route=normalized,
            allowed=False,
            reason=AccessDenyReason.PERMISSION_INACTIVE,
            permission_code=permission.code,
        )
    elif permission.is_public:
        decision = RouteAccessDecision(route=normalized, allowed=True, permission_code=permission.code)
    elif user_id is None:
        decision = RouteAccessDecision(
            route=normalized,
            allowed=False,
            reason=AccessDenyReason.AUTHENTICATION_REQUIRED,
            permission_code=permission.code,
        )
    elif user_has_permission(get_effective_permission_codes(db, user_id), permission.code):
        decision = RouteAccessDecision(route=normalized, allowed=True, permission_code=permission.code)
    else:
        decision = RouteAccessDecision(
            route=normalized,
            allowed=False,
            reason=AccessDenyReason.PERMISSION_MISSING,
            permission_code=permission.code,
        )

    if not decision.allowed:
        logger.info(
            "route access denied route=%s user_id=%s reason=%s permission=%s",
            normalized,
            user_id,
            decision.reason,
            decision.permission_code,
        )
    return decision


def can_access_route(db: Session, user_id: UUID | None, route: str) -> bool:
    """返回路由是否可访问。"""
    return check_route_access(db, user_id, route).allowed
