"""导航菜单接口。"""

from uuid import UUID

from fastapi import APIRouter, Depends, Path, Request, status
from sqlalchemy.orm import Session

from iam_api.db.session import get_db
from iam_api.dependencies import ROLES_VIEW, get_current_user_id, require_permissions
from iam_api.schemas.common import ErrorResponse, SuccessResponse
from iam_api.schemas.responses import MenuData, MenuEntryData
from iam_api.services import MenuResult, build_menu_for_role, build_menu_for_user, list_public_menu
from iam_api.utils.response import success

router = APIRouter(prefix="/menu", tags=["menu"])

USER_NO_PERMISSIONS_MESSAGE = "该用户未分配任何权限，请在管理后台配置角色与权限。"
ROLE_NO_PERMISSIONS_MESSAGE = "该角色未分配任何权限，请在管理后台配置权限。"


def _menu_payload(result: MenuResult, *, alert: dict | None) -> dict:
    return {
        "menu": [entry.to_dict() for entry in result.items],
        "alert": alert if result.has_no_permissions else None,
    }


@router.get(
    "",
    summary="查询当前用户菜单",
    description="按当前用户有效权限过滤私有菜单；公开菜单项不出现在结果中。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[MenuData],
    responses={401: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
def get_user_menu(
    request: Request,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """用户未分配任何权限时返回空菜单与提示。"""
    result = build_menu_for_user(db, user_id)
    alert = {"user_id": user_id, "message": USER_NO_PERMISSIONS_MESSAGE}
    return success(request, _menu_payload(result, alert=alert))


@router.get(
    "/public",
    summary="查询公开菜单",
    description="返回全部公开菜单项，无需登录。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[list[MenuEntryData]],
    responses={503: {"model": ErrorResponse}},
)
def get_public_menu(request: Request, db: Session = Depends(get_db)):
    """公开菜单不做权限过滤。"""
    return success(request, [entry.to_dict() for entry in list_public_menu(db)])


@router.get(
    "/roles/{role_id}",
    summary="预览角色菜单",
    description="按单个角色的权限过滤菜单，供角色配置页预览。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[MenuData],
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
def get_role_menu(
    request: Request,
    role_id: UUID = Path(..., description="角色 ID。"),
    _: UUID | None = Depends(require_permissions(ROLES_VIEW)),
    db: Session = Depends(get_db),
):
    """角色不存在或已停用返回 404。"""
    result = build_menu_for_role(db, role_id)
    alert = {"role_id": role_id, "message": ROLE_NO_PERMISSIONS_MESSAGE}
    return success(request, _menu_payload(result, alert=alert))
