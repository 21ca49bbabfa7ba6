"""请求上下文依赖。

职责:
1. 解析并校验访问令牌（可选，未携带即匿名）。
2. 提供当前调用方用户 ID。
3. 以 require_permissions 声明接口的 (权限码, require_all) 策略。
"""

from uuid import UUID

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from iam_api.core.security import AuthenticatedPrincipal, parse_authorization_header
from iam_api.db.session import get_db
from iam_api.exceptions import AuthenticationRequiredError
from iam_api.services.guard import enforce_permissions

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> AuthenticatedPrincipal | None:
    """提取并解析当前请求认证主体，未携带令牌时返回 None。"""
    authorization = None
    if credentials is not None and credentials.credentials:
        authorization = f"{credentials.scheme} {credentials.credentials}"
    return parse_authorization_header(authorization)


def get_optional_user_id(
    principal: AuthenticatedPrincipal | None = Depends(get_current_principal),
) -> UUID | None:
    """返回调用方用户 ID；匿名调用方返回 None。"""
    return principal.user_id if principal else None


def get_current_user_id(
    request: Request,
    user_id: UUID | None = Depends(get_optional_user_id),
) -> UUID:
    """要求已认证调用方。"""
    if user_id is None:
        raise AuthenticationRequiredError(request.url.path)
    return user_id


def require_permissions(*codes: str, require_all: bool = False):
    """按权限码做路由级权限限制，返回调用方用户 ID。"""

    def _dep(
        request: Request,
        user_id: UUID | None = Depends(get_optional_user_id),
        db: Session = Depends(get_db),
    ) -> UUID | None:
        enforce_permissions(
            db,
            user_id=user_id,
            required_codes=codes,
            require_all=require_all,
            route=request.url.path,
        )
        return user_id

    return _dep


# 角色与授权管理接口使用的权限码。
ROLES_VIEW = "roles.view"
ROLES_EDIT = "roles.edit"
ACCESSES_MANAGE = "security.accesses.manage"
