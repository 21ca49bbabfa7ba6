"""健康检查接口。"""

from sqlalchemy import text
from sqlalchemy.orm import Session

from fastapi import APIRouter, Depends, Request, status

from iam_api.db.session import get_db
from iam_api.exceptions import translate_store_errors
from iam_api.utils.response import success
from iam_api.schemas.common import ErrorResponse, SuccessResponse
from iam_api.schemas.responses import HealthStatusData

router = APIRouter(prefix="/health", tags=["health"])


@router.get(
    "/live",
    summary="存活探针",
    description="用于容器编排系统检测服务进程是否存活。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[HealthStatusData],
    responses={500: {"model": ErrorResponse}},
)
def live(request: Request):
    """仅表示进程存活，不校验外部依赖。"""
    return success(request, {"status": "ok"})


@router.get(
    "/ready",
    summary="就绪探针",
    description="通过权限存储连通性检测服务是否具备授权判定能力。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[HealthStatusData],
    responses={503: {"model": ErrorResponse}},
)
def ready(request: Request, db: Session = Depends(get_db)):
    """存储不可用时返回 503，与授权判定失败语义一致。"""
    with translate_store_errors("readiness_check"):
        db.execute(text("select 1"))
    return success(request, {"status": "ready"})
