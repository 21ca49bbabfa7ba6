"""角色权限与用户角色的授权写入。

约束：
1. 只做状态变更（RecordStatus），不物理删除关联记录。
2. 同一关联对至多一条 ACTIVE 记录：已存在则复用并重新激活。
3. 仅 flush，不 commit，由调用方决定事务边界。
4. 变更只登记缓存失效，由调用方提交后执行（见 db.session.commit_changes）。
"""

from collections.abc import Sequence
import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from iam_api.exceptions import AssignmentTargetNotFoundError, translate_store_errors
from iam_api.models.enums import RecordStatus
from iam_api.models.identity import Role, User, UserRole
from iam_api.models.permission import Permission, RolePermission
from iam_api.services.permission_cache import mark_permissions_changed

logger = logging.getLogger("iam_api.assignments")


def _ensure_role(db: Session, role_id: UUID) -> Role:
    role = db.execute(
        select(Role).where(Role.id == role_id).where(Role.status != RecordStatus.DELETED)
    ).scalar_one_or_none()
    if role is None:
        raise AssignmentTargetNotFoundError("role", [role_id])
    return role


def _ensure_user(db: Session, user_id: UUID) -> User:
    user = db.execute(
        select(User).where(User.id == user_id).where(User.status != RecordStatus.DELETED)
    ).scalar_one_or_none()
    if user is None:
        raise AssignmentTargetNotFoundError("user", [user_id])
    return user


def _ensure_permissions(db: Session, permission_ids: Sequence[UUID]) -> list[Permission]:
    unique_ids = list(dict.fromkeys(permission_ids))
    if not unique_ids:
        return []
    rows = (
        db.execute(
            select(Permission)
            .where(Permission.id.in_(unique_ids))
            .where(Permission.status != RecordStatus.DELETED)
        )
        .scalars()
        .all()
    )
    found = {row.id for row in rows}
    missing = [permission_id for permission_id in unique_ids if permission_id not in found]
    if missing:
        raise AssignmentTargetNotFoundError("permission", missing)
    return sorted(rows, key=lambda row: row.code)


def assign_role_permissions(db: Session, *, role_id: UUID, permission_ids: Sequence[UUID]) -> list[Permission]:
    """为角色授予权限点，返回本次授予的权限点。"""
    with translate_store_errors("assign_role_permissions"):
        _ensure_role(db, role_id)
        permissions = _ensure_permissions(db, permission_ids)
        if not permissions:
            return []

        existing = {
            link.permission_id: link
            for link in db.execute(
                select(RolePermission)
                .where(RolePermission.role_id == role_id)
                .where(RolePermission.permission_id.in_([permission.id for permission in permissions]))
            )
            .scalars()
            .all()
        }
        for permission in permissions:
            link = existing.get(permission.id)
            if link is None:
                db.add(RolePermission(role_id=role_id, permission_id=permission.id, status=RecordStatus.ACTIVE))
            elif link.status != RecordStatus.ACTIVE:
                link.status = RecordStatus.ACTIVE
        db.flush()

    # 角色可能被任意数量用户持有，整体失效。
    mark_permissions_changed(db)
    logger.info("role permissions assigned role_id=%s codes=%s", role_id, [item.code for item in permissions])
    return permissions


def revoke_role_permissions(db: Session, *, role_id: UUID, permission_ids: Sequence[UUID]) -> int:
    """撤销角色上的权限点，返回被停用的关联数。"""
    unique_ids = list(dict.fromkeys(permission_ids))
    if not unique_ids:
        return 0
    with translate_store_errors("revoke_role_permissions"):
        _ensure_role(db, role_id)
        links = (
            db.execute(
                select(RolePermission)
                .where(RolePermission.role_id == role_id)
                .where(RolePermission.permission_id.in_(unique_ids))
                .where(RolePermission.status == RecordStatus.ACTIVE)
            )
            .scalars()
            .all()
        )
        for link in links:
            link.status = RecordStatus.INACTIVE
        db.flush()

    mark_permissions_changed(db)
    logger.info("role permissions revoked role_id=%s count=%s", role_id, len(links))
    return len(links)


def assign_user_role(db: Session, *, user_id: UUID, role_id: UUID, branch_id: UUID | None = None) -> UserRole:
    """为用户分配角色；已有相同分配时重新激活。"""
    with translate_store_errors("assign_user_role"):
        _ensure_user(db, user_id)
        _ensure_role(db, role_id)

        stmt = select(UserRole).where(UserRole.user_id == user_id).where(UserRole.role_id == role_id)
        if branch_id is None:
            stmt = stmt.where(UserRole.branch_id.is_(None))
        else:
            stmt = stmt.where(UserRole.branch_id == branch_id)
        assignment = db.execute(stmt).scalars().first()

        if assignment is None:
            assignment = UserRole(user_id=user_id, role_id=role_id, branch_id=branch_id, status=RecordStatus.ACTIVE)
            db.add(assignment)
        elif assignment.status != RecordStatus.ACTIVE:
            assignment.status = RecordStatus.ACTIVE
        db.flush()

    mark_permissions_changed(db, user_id=user_id)
    logger.info("user role assigned user_id=%s role_id=%s branch_id=%s", user_id, role_id, branch_id)
    return assignment


def revoke_user_role(db: Session, *, user_id: UUID, role_id: UUID) -> int:
    """停用用户在该角色上的全部 ACTIVE 分配，返回停用数量。"""
    with translate_store_errors("revoke_user_role"):
        _ensure_user(db, user_id)
        assignments = (
            db.execute(
                select(UserRole)
                .where(UserRole.user_id == user_id)
                .where(UserRole.role_id == role_id)
                .where(UserRole.status == RecordStatus.ACTIVE)
            )
            .scalars()
            .all()
        )
        for assignment in assignments:
            assignment.status = RecordStatus.INACTIVE
        db.flush()

    mark_permissions_changed(db, user_id=user_id)
    logger.info("user role revoked user_id=%s role_id=%s count=%s", user_id, role_id, len(assignments))
    return len(assignments)
