"""导航菜单树组装与按权限过滤。

菜单节点以平铺结构（以 menu_id 为键的字典 + 子节点 ID 列表）保存：
1. 父节点缺失或已停用时，子节点提升为根节点。
2. 遍历记录已访问节点，数据中出现环时不会无限递归。
3. 节点形态固定：links 为叶子链接，columns 为分组链接，children 只保存子节点 ID。
"""

from collections.abc import Callable, Iterator
from dataclasses import dataclass, field, replace
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from iam_api.exceptions import RoleNotFoundError, translate_store_errors
from iam_api.models.enums import RecordStatus
from iam_api.models.identity import Role
from iam_api.models.menu import MenuItem
from iam_api.models.permission import Permission
from iam_api.services.permissions import get_effective_permission_codes, get_role_permissions, user_has_permission

CodeMatcher = Callable[[str], bool]


@dataclass(frozen=True)
class MenuLink:
    """叶子链接。"""

    id: str
    label: str
    route: str | None = None
    description: str | None = None
    permission_code: str | None = None
    is_public: bool = False
    # permission_code 对应的权限点是否 ACTIVE，由 load_menu_arena 回填。
    permission_active: bool = False

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"id": self.id, "label": self.label, "route": self.route or ""}
        if self.description:
            payload["description"] = self.description
        return payload


@dataclass(frozen=True)
class MenuGroup:
    """分栏：标题 + 叶子链接。"""

    title: str
    items: list[MenuLink]

    def to_dict(self) -> dict[str, Any]:
        return {"title": self.title, "items": [item.to_dict() for item in self.items]}


@dataclass
class MenuNode:
    """菜单树节点。"""

    menu_id: str
    label: str
    route: str | None = None
    icon: str | None = None
    description: str | None = None
    is_public: bool = False
    order: int = 0
    # 绑定的权限点；permission_id 为空表示登录即可见。
    permission_id: UUID | None = None
    permission_code: str | None = None
    permission_active: bool = False
    columns: list[MenuGroup] = field(default_factory=list)
    links: list[MenuLink] = field(default_factory=list)
    children: list[str] = field(default_factory=list)

    @property
    def requires_permission(self) -> bool:
        return self.permission_id is not None


@dataclass
class MenuArena:
    """菜单平铺存储：nodes 以 menu_id 为键，roots 为按 order 排序的根节点 ID。"""

    nodes: dict[str, MenuNode] = field(default_factory=dict)
    roots: list[str] = field(default_factory=list)

    def walk(self) -> Iterator[MenuNode]:
        """深度优先遍历：先根节点，再遍历不可从根到达的节点（环上节点）。"""
        visited: set[str] = set()
        for start in [*self.roots, *self.nodes.keys()]:
            stack = [start]
            while stack:
                menu_id = stack.pop()
                if menu_id in visited or menu_id not in self.nodes:
                    continue
                visited.add(menu_id)
                node = self.nodes[menu_id]
                yield node
                stack.extend(reversed(node.children))


@dataclass
class MenuEntry:
    """过滤后的可见菜单项。"""

    id: str
    label: str
    route: str | None = None
    icon: str | None = None
    columns: list[MenuGroup] = field(default_factory=list)
    submenu: list[MenuLink] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"id": self.id, "label": self.label}
        if self.route:
            payload["route"] = self.route
        if self.icon:
            payload["icon"] = self.icon
        if self.columns:
            payload["columns"] = [column.to_dict() for column in self.columns]
        if self.submenu:
            payload["submenu"] = [link.to_dict() for link in self.submenu]
        return payload


@dataclass
class MenuResult:
    """用户/角色菜单结果；has_no_permissions 为 True 时 items 必为空。"""

    items: list[MenuEntry]
    has_no_permissions: bool = False


def _parse_link(raw: Any) -> MenuLink | None:
    """解析 JSON 链接，缺少 id 的条目忽略。"""
    if not isinstance(raw, dict):
        return None
    link_id = raw.get("id") or raw.get("menu_id")
    if not link_id:
        return None
    permission_code = raw.get("permission_code")
    return MenuLink(
        id=str(link_id),
        label=str(raw.get("label") or link_id),
        route=raw.get("route") or None,
        description=raw.get("description") or None,
        permission_code=str(permission_code) if permission_code else None,
        is_public=bool(raw.get("is_public", False)),
    )


def _parse_links(raw_links: Any) -> list[MenuLink]:
    if not isinstance(raw_links, list):
        return []
    return [link for link in (_parse_link(item) for item in raw_links) if link is not None]


def _parse_columns(raw_columns: Any) -> list[MenuGroup]:
    if not isinstance(raw_columns, list):
        return []
    groups: list[MenuGroup] = []
    for raw in raw_columns:
        if not isinstance(raw, dict):
            continue
        groups.append(MenuGroup(title=str(raw.get("title") or ""), items=_parse_links(raw.get("items"))))
    return groups


def _load_active_items(db: Session, *, public_only: bool = False) -> list[MenuItem]:
    stmt = select(MenuItem).where(MenuItem.status == RecordStatus.ACTIVE)
    if public_only:
        stmt = stmt.where(MenuItem.is_public.is_(True))
    stmt = stmt.order_by(MenuItem.order.asc(), MenuItem.menu_id.asc())
    return list(db.execute(stmt).scalars().all())


def _load_bound_permissions(db: Session, items: list[MenuItem]) -> dict[UUID, Permission]:
    permission_ids = {item.permission_id for item in items if item.permission_id is not None}
    if not permission_ids:
        return {}
    rows = db.execute(select(Permission).where(Permission.id.in_(permission_ids))).scalars().all()
    return {row.id: row for row in rows}


def _load_active_link_codes(db: Session, items: list[MenuItem]) -> set[str]:
    codes: set[str] = set()
    for item in items:
        links = [link for group in _parse_columns(item.columns) for link in group.items]
        links.extend(_parse_links(item.submenu))
        codes.update(link.permission_code for link in links if link.permission_code)
    if not codes:
        return set()
    stmt = select(Permission.code).where(Permission.code.in_(codes)).where(Permission.status == RecordStatus.ACTIVE)
    return set(db.execute(stmt).scalars().all())


def _mark_active(links: list[MenuLink], active_codes: set[str]) -> list[MenuLink]:
    return [replace(link, permission_active=link.permission_code in active_codes) for link in links]


def _to_node(item: MenuItem, permissions: dict[UUID, Permission], active_codes: set[str]) -> MenuNode:
    permission = permissions.get(item.permission_id) if item.permission_id else None
    return MenuNode(
        menu_id=item.menu_id,
        label=item.label,
        route=item.route,
        icon=item.icon,
        description=item.description,
        is_public=bool(item.is_public),
        order=item.order or 0,
        permission_id=item.permission_id,
        permission_code=permission.code if permission else None,
        permission_active=bool(permission and permission.status == RecordStatus.ACTIVE),
        columns=[
            MenuGroup(title=group.title, items=_mark_active(group.items, active_codes))
            for group in _parse_columns(item.columns)
        ],
        links=_mark_active(_parse_links(item.submenu), active_codes),
    )


def load_menu_arena(db: Session) -> MenuArena:
    """加载全部 ACTIVE 菜单项并组装为平铺树。"""
    with translate_store_errors("load_menu_arena"):
        items = _load_active_items(db)
        permissions = _load_bound_permissions(db, items)
        active_codes = _load_active_link_codes(db, items)

    arena = MenuArena()
    id_to_menu_id: dict[UUID, str] = {}
    for item in items:
        arena.nodes[item.menu_id] = _to_node(item, permissions, active_codes)
        id_to_menu_id[item.id] = item.menu_id

    # items 已按 order 排序，子节点顺序与之保持一致。
    for item in items:
        parent_menu_id = id_to_menu_id.get(item.parent_id) if item.parent_id else None
        if parent_menu_id is None or parent_menu_id == item.menu_id:
            arena.roots.append(item.menu_id)
        else:
            arena.nodes[parent_menu_id].children.append(item.menu_id)
    return arena


def _node_visible(node: MenuNode, matches: CodeMatcher) -> bool:
    if node.is_public:
        return False
    if not node.requires_permission:
        return True
    # 绑定的权限点不存在或非 ACTIVE 时不可授予。
    if node.permission_code is None or not node.permission_active:
        return False
    return matches(node.permission_code)


def _link_visible(link: MenuLink, matches: CodeMatcher) -> bool:
    if link.is_public:
        return False
    if link.permission_code is None:
        return True
    # 与节点一致：权限码无对应 ACTIVE 权限点时不可授予。
    if not link.permission_active:
        return False
    return matches(link.permission_code)


def _filter_links(links: list[MenuLink], matches: CodeMatcher) -> list[MenuLink]:
    return [link for link in links if _link_visible(link, matches)]


def _filter_node(arena: MenuArena, node: MenuNode, matches: CodeMatcher, visiting: set[str]) -> MenuEntry:
    columns: list[MenuGroup] = []
    for group in node.columns:
        items = _filter_links(group.items, matches)
        # 过滤后为空的分栏整体移除。
        if items:
            columns.append(MenuGroup(title=group.title, items=items))
    submenu = _filter_links(node.links, matches)

    visiting.add(node.menu_id)
    known_ids = {link.id for link in submenu}
    for child_id in node.children:
        child = arena.nodes.get(child_id)
        if child is None or child_id in visiting or not _node_visible(child, matches):
            continue
        entry = _filter_node(arena, child, matches, visiting)
        if entry.id in known_ids:
            continue
        known_ids.add(entry.id)
        submenu.append(MenuLink(id=entry.id, label=entry.label, route=entry.route))
    visiting.discard(node.menu_id)

    return MenuEntry(
        id=node.menu_id,
        label=node.label,
        route=node.route,
        icon=node.icon,
        columns=columns,
        submenu=submenu,
    )


def filter_menu(arena: MenuArena, granted_codes: list[str]) -> list[MenuEntry]:
    """按授予码过滤菜单树，顶层按 order 输出，嵌套集合保持源顺序。"""

    def matches(code: str) -> bool:
        return user_has_permission(granted_codes, code)

    entries: list[MenuEntry] = []
    for root_id in arena.roots:
        node = arena.nodes[root_id]
        if _node_visible(node, matches):
            entries.append(_filter_node(arena, node, matches, set()))
    return entries


def build_menu_for_user(db: Session, user_id: UUID) -> MenuResult:
    """按用户有效权限构建私有菜单。"""
    granted_codes = get_effective_permission_codes(db, user_id)
    if not granted_codes:
        return MenuResult(items=[], has_no_permissions=True)
    return MenuResult(items=filter_menu(load_menu_arena(db), granted_codes))


def build_menu_for_role(db: Session, role_id: UUID) -> MenuResult:
    """按单个角色权限预览菜单。"""
    with translate_store_errors("build_menu_for_role"):
        role = db.execute(select(Role).where(Role.id == role_id)).scalar_one_or_none()
    if role is None or role.status != RecordStatus.ACTIVE:
        raise RoleNotFoundError(role_id)

    granted_codes = sorted({permission.code for permission in get_role_permissions(db, role_id)})
    if not granted_codes:
        return MenuResult(items=[], has_no_permissions=True)
    return MenuResult(items=filter_menu(load_menu_arena(db), granted_codes))


def list_public_menu(db: Session) -> list[MenuEntry]:
    """返回全部 ACTIVE 公开菜单项，不做权限过滤。"""
    with translate_store_errors("list_public_menu"):
        items = _load_active_items(db, public_only=True)
    return [
        MenuEntry(
            id=item.menu_id,
            label=item.label,
            route=item.route,
            icon=item.icon,
            columns=_parse_columns(item.columns),
            submenu=_parse_links(item.submenu),
        )
        for item in items
    ]
