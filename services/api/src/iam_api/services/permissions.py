"""有效权限聚合与权限码匹配（数据库驱动）。

规则：
1. 有效权限 = 用户全部 ACTIVE 角色分配 → ACTIVE 角色 → ACTIVE 角色权限关联 → ACTIVE 权限点，按权限点 ID 去重。
2. 权限码匹配：完全相等即命中；含 `*` 的授予码取第一个 `*` 之前的字面前缀做前缀匹配。
3. 前缀匹配不感知 `.` 分段，`user*` 同样命中 `users2.view`。
"""

from collections.abc import Iterable, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from iam_api.exceptions import translate_store_errors
from iam_api.models.enums import RecordStatus
from iam_api.models.identity import Role, User, UserRole
from iam_api.models.permission import Permission, RolePermission
from iam_api.services.permission_cache import get_permission_cache

WILDCARD = "*"


def matches_permission_code(granted: str, required: str) -> bool:
    """判断单个授予码是否覆盖所需权限码。"""
    if granted == required:
        return True
    if WILDCARD not in granted:
        return False
    prefix = granted.split(WILDCARD, 1)[0]
    # 纯 `*` 前缀为空，不视为全局通配。
    return bool(prefix) and required.startswith(prefix)


def user_has_permission(granted_codes: Iterable[str], required: str) -> bool:
    """判断授予码集合中是否存在能覆盖 required 的权限码。"""
    return any(matches_permission_code(code, required) for code in granted_codes)


def _dedupe_by_id(permissions: Iterable[Permission]) -> list[Permission]:
    seen: set[UUID] = set()
    result: list[Permission] = []
    for permission in permissions:
        if permission.id in seen:
            continue
        seen.add(permission.id)
        result.append(permission)
    return result


def _is_active_user(db: Session, user_id: UUID) -> bool:
    status_value = db.execute(select(User.status).where(User.id == user_id)).scalar_one_or_none()
    return status_value == RecordStatus.ACTIVE


def get_effective_permissions(db: Session, user_id: UUID) -> list[Permission]:
    """返回用户有效权限点集合（按 code 排序，按 ID 唯一）。

    用户不存在或非 ACTIVE 时返回空列表，而不是抛错。
    存储读取失败抛 PermissionStoreError。
    """
    with translate_store_errors("get_effective_permissions"):
        if not _is_active_user(db, user_id):
            return []
        stmt = (
            select(Permission)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .join(Role, Role.id == RolePermission.role_id)
            .join(UserRole, UserRole.role_id == Role.id)
            .where(UserRole.user_id == user_id)
            .where(UserRole.status == RecordStatus.ACTIVE)
            .where(Role.status == RecordStatus.ACTIVE)
            .where(RolePermission.status == RecordStatus.ACTIVE)
            .where(Permission.status == RecordStatus.ACTIVE)
            .order_by(Permission.code.asc())
        )
        rows = db.execute(stmt).scalars().all()
    return _dedupe_by_id(rows)


def get_effective_permission_codes(db: Session, user_id: UUID) -> list[str]:
    """返回用户有效权限码（升序）。

    启用缓存时优先读取缓存；未启用时每次实时计算。
    """
    cache = get_permission_cache()
    if cache.enabled:
        cached = cache.get(user_id)
        if cached is not None:
            return cached

    codes = sorted({permission.code for permission in get_effective_permissions(db, user_id)})
    if cache.enabled:
        cache.set(user_id, codes)
    return codes


def get_role_permissions(db: Session, role_id: UUID) -> list[Permission]:
    """返回单个 ACTIVE 角色持有的 ACTIVE 权限点。"""
    with translate_store_errors("get_role_permissions"):
        stmt = (
            select(Permission)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .join(Role, Role.id == RolePermission.role_id)
            .where(Role.id == role_id)
            .where(Role.status == RecordStatus.ACTIVE)
            .where(RolePermission.status == RecordStatus.ACTIVE)
            .where(Permission.status == RecordStatus.ACTIVE)
            .order_by(Permission.code.asc())
        )
        rows = db.execute(stmt).scalars().all()
    return _dedupe_by_id(rows)


def has_permission(db: Session, user_id: UUID, code: str) -> bool:
    """判断用户是否具备指定权限码。"""
    return user_has_permission(get_effective_permission_codes(db, user_id), code)


def has_any_permission(db: Session, user_id: UUID, codes: Sequence[str]) -> bool:
    """任一权限码命中即返回 True；空列表返回 False。"""
    if not codes:
        return False
    granted = get_effective_permission_codes(db, user_id)
    return any(user_has_permission(granted, code) for code in codes)


def has_all_permissions(db: Session, user_id: UUID, codes: Sequence[str]) -> bool:
    """全部权限码命中才返回 True；空列表返回 True。"""
    if not codes:
        return True
    granted = get_effective_permission_codes(db, user_id)
    return all(user_has_permission(granted, code) for code in codes)


def can_execute_action(db: Session, user_id: UUID, resource: str, action: str) -> bool:
    """按 `{resource}.{action}` 判断动作权限。"""
    return has_permission(db, user_id, f"{resource}.{action}")
