"""授权领域异常与应用异常处理注册。

异常分类：
1. 未认证（AuthenticationRequiredError）：调用方需先登录，区别于"已登录但无权限"。
2. 拒绝（PermissionDeniedError）：携带路由、所需权限码与策略，便于审计。
3. 存储故障（PermissionStoreError）：无法判定，必须使外层请求失败，禁止降级为"无权限"。
4. 缓存失效故障（PermissionCacheError）：写入已提交但旧权限可能仍被命中，同样使请求失败。
5. 路由未知不抛异常，以 RouteResolution.found 表达。
"""

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
import logging
from typing import Any
from uuid import UUID

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from iam_api.utils.response import DEFAULT_ERROR_MESSAGE, error_payload

logger = logging.getLogger("iam_api.exceptions")


class AccessControlError(Exception):
    """授权引擎异常基类。"""

    code = "ACCESS_CONTROL_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "授权处理失败。"

    def details(self) -> dict[str, Any]:
        return {}


class AuthenticationRequiredError(AccessControlError):
    """需要调用方身份但未提供。"""

    code = "UNAUTHORIZED"
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "未登录或登录状态已失效。"

    def __init__(self, route: str | None = None) -> None:
        super().__init__("authentication required")
        self.route = route

    def details(self) -> dict[str, Any]:
        return {"route": self.route, "reason": "authentication_required"}


class PermissionDeniedError(AccessControlError):
    """调用方身份明确，但不满足权限要求。"""

    code = "FORBIDDEN"
    status_code = status.HTTP_403_FORBIDDEN
    message = "无权限访问该资源。"

    def __init__(
        self,
        *,
        route: str | None,
        required_codes: Sequence[str] = (),
        require_all: bool = False,
        reason: str = "permission_missing",
    ) -> None:
        super().__init__("permission denied")
        self.route = route
        self.required_codes = list(required_codes)
        self.require_all = require_all
        self.reason = reason

    def details(self) -> dict[str, Any]:
        return {
            "route": self.route,
            "required_permissions": self.required_codes,
            "policy": "all" if self.require_all else "any",
            "reason": self.reason,
        }


class PermissionStoreError(AccessControlError):
    """权限/角色/菜单存储读取失败。"""

    code = "PERMISSION_STORE_UNAVAILABLE"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    message = "权限数据暂不可用，无法完成授权判定。"

    def __init__(self, operation: str) -> None:
        super().__init__(f"permission store failure during {operation}")
        self.operation = operation

    def details(self) -> dict[str, Any]:
        return {"operation": self.operation, "reason": "store_failure"}


class PermissionCacheError(AccessControlError):
    """有效权限缓存失效失败；变更已提交，但缓存中可能残留旧权限。"""

    code = "PERMISSION_CACHE_UNAVAILABLE"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    message = "授权变更已保存，但权限缓存刷新失败，请稍后重试。"

    def __init__(self, operation: str) -> None:
        super().__init__(f"permission cache failure during {operation}")
        self.operation = operation

    def details(self) -> dict[str, Any]:
        return {"operation": self.operation, "reason": "cache_invalidation_failure"}


class RoleNotFoundError(AccessControlError):
    """角色不存在或非 ACTIVE。"""

    code = "ROLE_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    message = "角色不存在或已停用。"

    def __init__(self, role_id: UUID) -> None:
        super().__init__(f"role {role_id} not found")
        self.role_id = role_id

    def details(self) -> dict[str, Any]:
        return {"role_id": str(self.role_id)}


class AssignmentTargetNotFoundError(AccessControlError):
    """授权写入的目标（用户/角色/权限点）不存在。"""

    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    message = "请求资源不存在。"

    def __init__(self, resource_type: str, resource_ids: Sequence[UUID]) -> None:
        super().__init__(f"{resource_type} not found")
        self.resource_type = resource_type
        self.resource_ids = [str(item) for item in resource_ids]

    def details(self) -> dict[str, Any]:
        return {"resource_type": self.resource_type, "resource_ids": self.resource_ids}


@contextmanager
def translate_store_errors(operation: str) -> Iterator[None]:
    """把存储层异常统一转换为 PermissionStoreError。

    只转换、不吞掉：调用方拿到的是"无法判定"，而不是空权限集合。
    """
    try:
        yield
    except SQLAlchemyError as exc:
        logger.exception("permission store failure operation=%s", operation)
        raise PermissionStoreError(operation) from exc


def _default_http_error_code(status_code: int) -> str:
    if status_code == status.HTTP_400_BAD_REQUEST:
        return "BAD_REQUEST"
    if status_code == status.HTTP_401_UNAUTHORIZED:
        return "UNAUTHORIZED"
    if status_code == status.HTTP_403_FORBIDDEN:
        return "FORBIDDEN"
    if status_code == status.HTTP_404_NOT_FOUND:
        return "NOT_FOUND"
    if status_code == status.HTTP_422_UNPROCESSABLE_CONTENT:
        return "VALIDATION_ERROR"
    return "HTTP_ERROR"


def _default_http_message(status_code: int) -> str:
    if status_code == status.HTTP_400_BAD_REQUEST:
        return "请求参数不合法。"
    if status_code == status.HTTP_401_UNAUTHORIZED:
        return "未登录或登录状态已失效。"
    if status_code == status.HTTP_403_FORBIDDEN:
        return "无权限访问该资源。"
    if status_code == status.HTTP_404_NOT_FOUND:
        return "请求资源不存在。"
    if status_code == status.HTTP_422_UNPROCESSABLE_CONTENT:
        return "请求参数校验失败。"
    return "请求处理失败。"


def _default_http_suggestion(status_code: int) -> str:
    if status_code == status.HTTP_401_UNAUTHORIZED:
        return "请重新登录并携带有效访问令牌。"
    if status_code == status.HTTP_403_FORBIDDEN:
        return "请确认当前账号的角色与权限配置。"
    if status_code == status.HTTP_404_NOT_FOUND:
        return "请确认资源 ID 是否正确，或资源是否已被删除。"
    if status_code == status.HTTP_422_UNPROCESSABLE_CONTENT:
        return "请根据错误字段提示修正请求参数后重试。"
    if status_code == status.HTTP_503_SERVICE_UNAVAILABLE:
        return "权限存储暂不可用，请稍后重试。"
    return "请稍后重试，若持续失败请联系管理员。"


def _parse_http_detail(detail: object, status_code: int) -> tuple[str, str, dict[str, object]]:
    code = _default_http_error_code(status_code)
    message = _default_http_message(status_code)
    details: dict[str, object] = {
        "status_code": status_code,
        "reason": code.lower(),
        "suggestion": _default_http_suggestion(status_code),
    }

    if isinstance(detail, dict):
        code = str(detail.get("code") or code)
        message = str(detail.get("message") or detail.get("detail") or message)
        raw_details = detail.get("details")
        if isinstance(raw_details, dict):
            details.update(raw_details)
        elif raw_details is not None:
            details["details"] = raw_details
        return code, message, details

    if isinstance(detail, str) and detail.strip().lower() not in {"forbidden", "unauthorized"}:
        message = detail
    return code, message, details


async def access_control_exception_handler(request: Request, exc: AccessControlError):
    """授权领域异常包装为统一错误结构。"""
    details: dict[str, object] = {
        "status_code": exc.status_code,
        "suggestion": _default_http_suggestion(exc.status_code),
    }
    details.update(exc.details())
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload(request, code=exc.code, message=exc.message, details=details),
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    """将协议异常统一包装为标准错误结构。"""
    code, message, details = _parse_http_detail(exc.detail, exc.status_code)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload(request, code=code, message=message, details=details),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """统一处理请求参数校验错误。"""
    normalized_errors = [
        {
            "field": ".".join(str(item) for item in err.get("loc", []) if item != "body"),
            "message": err.get("msg"),
            "type": err.get("type"),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
        content=error_payload(
            request,
            code="VALIDATION_ERROR",
            message="请求参数校验失败。",
            details={
                "status_code": status.HTTP_422_UNPROCESSABLE_CONTENT,
                "reason": "validation_error",
                "suggestion": _default_http_suggestion(status.HTTP_422_UNPROCESSABLE_CONTENT),
                "errors": normalized_errors,
            },
        ),
    )


async def unexpected_exception_handler(request: Request, exc: Exception):
    """处理未捕获异常，避免内部细节泄露。"""
    logger.exception("unexpected exception path=%s", request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_payload(
            request,
            code="INTERNAL_ERROR",
            message=DEFAULT_ERROR_MESSAGE,
            details={
                "status_code": status.HTTP_500_INTERNAL_SERVER_ERROR,
                "reason": "unexpected_exception",
                "suggestion": "请稍后重试，若持续失败请联系管理员并提供 request_id。",
            },
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """集中注册异常处理器。"""
    app.exception_handler(AccessControlError)(access_control_exception_handler)
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(Exception)(unexpected_exception_handler)
