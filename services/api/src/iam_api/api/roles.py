"""角色权限与用户角色授权接口。"""

from uuid import UUID

from fastapi import APIRouter, Body, Depends, Path, Request, status
from sqlalchemy.orm import Session

from iam_api.db.session import commit_changes, get_db
from iam_api.dependencies import ACCESSES_MANAGE, ROLES_EDIT, require_permissions
from iam_api.models.enums import RecordStatus
from iam_api.schemas.common import ErrorResponse, SuccessResponse
from iam_api.schemas.permission import RolePermissionUpdateRequest, UserRoleAssignRequest
from iam_api.schemas.responses import RolePermissionsData, UserRoleAssignmentData
from iam_api.services import (
    assign_role_permissions,
    assign_user_role,
    get_role_permissions,
    revoke_role_permissions,
    revoke_user_role,
)
from iam_api.utils.response import success

router = APIRouter(tags=["roles"])

_WRITE_RESPONSES = {
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def _role_permissions_payload(db: Session, role_id: UUID, changed: int) -> dict:
    permissions = get_role_permissions(db, role_id)
    return {
        "role_id": role_id,
        "permissions": [{"id": item.id, "code": item.code, "name": item.name} for item in permissions],
        "changed": changed,
    }


@router.put(
    "/roles/{role_id}/permissions",
    summary="授予角色权限点",
    description="为角色授予权限点；已存在的停用关联会被重新激活。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[RolePermissionsData],
    responses=_WRITE_RESPONSES,
)
def grant_role_permissions(
    payload: RolePermissionUpdateRequest,
    request: Request,
    role_id: UUID = Path(..., description="角色 ID。"),
    _: UUID | None = Depends(require_permissions(ROLES_EDIT)),
    db: Session = Depends(get_db),
):
    """授予后返回角色当前权限点。"""
    granted = assign_role_permissions(db, role_id=role_id, permission_ids=payload.permission_ids)
    commit_changes(db)
    return success(request, _role_permissions_payload(db, role_id, len(granted)))


@router.delete(
    "/roles/{role_id}/permissions",
    summary="撤销角色权限点",
    description="停用角色上的指定权限点关联，不物理删除。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[RolePermissionsData],
    responses=_WRITE_RESPONSES,
)
def remove_role_permissions(
    payload: RolePermissionUpdateRequest,
    request: Request,
    role_id: UUID = Path(..., description="角色 ID。"),
    _: UUID | None = Depends(require_permissions(ROLES_EDIT)),
    db: Session = Depends(get_db),
):
    """撤销后返回角色当前权限点。"""
    revoked = revoke_role_permissions(db, role_id=role_id, permission_ids=payload.permission_ids)
    commit_changes(db)
    return success(request, _role_permissions_payload(db, role_id, revoked))


@router.put(
    "/users/{user_id}/roles/{role_id}",
    summary="为用户分配角色",
    description="为用户分配角色；已存在的停用分配会被重新激活。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[UserRoleAssignmentData],
    responses=_WRITE_RESPONSES,
)
def grant_user_role(
    request: Request,
    user_id: UUID = Path(..., description="用户 ID。"),
    role_id: UUID = Path(..., description="角色 ID。"),
    payload: UserRoleAssignRequest | None = Body(default=None),
    _: UUID | None = Depends(require_permissions(ACCESSES_MANAGE)),
    db: Session = Depends(get_db),
):
    """返回分配记录。"""
    branch_id = payload.branch_id if payload else None
    assignment = assign_user_role(db, user_id=user_id, role_id=role_id, branch_id=branch_id)
    commit_changes(db)
    return success(
        request,
        {
            "user_id": user_id,
            "role_id": role_id,
            "branch_id": assignment.branch_id,
            "status": assignment.status,
            "changed": 1,
        },
    )


@router.delete(
    "/users/{user_id}/roles/{role_id}",
    summary="撤销用户角色",
    description="停用用户在该角色上的全部分配，不物理删除。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[UserRoleAssignmentData],
    responses=_WRITE_RESPONSES,
)
def remove_user_role(
    request: Request,
    user_id: UUID = Path(..., description="用户 ID。"),
    role_id: UUID = Path(..., description="角色 ID。"),
    _: UUID | None = Depends(require_permissions(ACCESSES_MANAGE)),
    db: Session = Depends(get_db),
):
    """返回停用数量。"""
    revoked = revoke_user_role(db, user_id=user_id, role_id=role_id)
    commit_changes(db)
    return success(
        request,
        {
            "user_id": user_id,
            "role_id": role_id,
            "branch_id": None,
            "status": int(RecordStatus.INACTIVE),
            "changed": revoked,
        },
    )
