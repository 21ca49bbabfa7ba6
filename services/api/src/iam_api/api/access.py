"""运行时访问判定接口（给前端路由守卫使用，无副作用）。"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from iam_api.db.session import get_db
from iam_api.dependencies import get_current_user_id, get_optional_user_id
from iam_api.exceptions import AuthenticationRequiredError, PermissionDeniedError
from iam_api.models.enums import AccessDenyReason
from iam_api.schemas.common import ErrorResponse, SuccessResponse
from iam_api.schemas.responses import EffectivePermissionsData, RouteAccessData
from iam_api.services import check_route_access, get_effective_permission_codes
from iam_api.utils.response import success

router = APIRouter(prefix="/access", tags=["access"])


@router.get(
    "",
    summary="判定路由访问权限",
    description="按前端路由解析保护它的权限点并判定调用方能否访问；匿名调用方仅可访问公开路由。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[RouteAccessData],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
def check_access(
    request: Request,
    route: str = Query(..., description="前端路由，可为完整 URL，查询串与锚点会被忽略。"),
    user_id: UUID | None = Depends(get_optional_user_id),
    db: Session = Depends(get_db),
):
    """通过返回 200；匿名访问非公开路由返回 401，其余拒绝返回 403，均携带规范化路由与拒绝原因。"""
    decision = check_route_access(db, user_id, route)
    if decision.reason is AccessDenyReason.AUTHENTICATION_REQUIRED:
        raise AuthenticationRequiredError(decision.route)
    if not decision.allowed:
        raise PermissionDeniedError(
            route=decision.route,
            required_codes=[decision.permission_code] if decision.permission_code else [],
            reason=str(decision.reason),
        )
    return success(
        request,
        {"route": decision.route, "access": True, "permission_code": decision.permission_code},
    )


@router.get(
    "/permissions",
    summary="查询当前用户有效权限码",
    description="返回当前用户全部 ACTIVE 角色汇总后的权限码，前端按钮级鉴权使用。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[EffectivePermissionsData],
    responses={401: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
def list_effective_permissions(
    request: Request,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """返回有效权限码。"""
    codes = get_effective_permission_codes(db, user_id)
    return success(request, {"user_id": user_id, "permission_codes": codes})
