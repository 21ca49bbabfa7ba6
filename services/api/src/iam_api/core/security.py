"""认证解析与令牌校验工具。

授权引擎只需要"已认证身份的用户 ID"：令牌签发由外部身份系统负责，这里只做校验与主体提取。
"""
from dataclasses import dataclass
from functools import lru_cache
import re
from typing import Any
from uuid import UUID

import jwt
from fastapi import HTTPException, status
from jwt import InvalidTokenError, PyJWKClient

from iam_api.core.config import get_settings

UNAUTHORIZED = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="unauthorized",
)
TOKEN_PLACEHOLDER_UNAUTHORIZED = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail={
        "code": "AUTH_TOKEN_PLACEHOLDER_NOT_RESOLVED",
        "message": "认证失败：Authorization 仍为变量占位符，未替换为真实访问令牌。",
        "details": {
            "reason": "authorization_placeholder_not_resolved",
            "suggestion": "请在请求头中传入 Bearer 真实令牌。",
        },
    },
)


@dataclass
class AuthenticatedPrincipal:
    """统一认证主体对象。"""

    # 本地用户 ID（来自 sub）。
    user_id: UUID
    # 认证提供方（issuer）。
    provider: str
    # 原始声明集，便于下游扩展。
    claims: dict[str, Any]


@lru_cache
def _get_jwks_client(jwks_url: str) -> PyJWKClient:
    """缓存密钥集合客户端，减少重复网络开销。"""
    return PyJWKClient(jwks_url)


def _decode_jwt(token: str) -> dict[str, Any]:
    """按配置解码并校验令牌。"""
    settings = get_settings()
    options = {"verify_signature": True, "verify_aud": bool(settings.auth_jwt_audience)}

    try:
        if settings.auth_jwks_url:
            # 生产建议使用 JWKS，支持密钥轮换。
            key = _get_jwks_client(settings.auth_jwks_url).get_signing_key_from_jwt(token).key
        else:
            # 未配置 JWKS 时使用对称密钥（本地开发/测试）。
            key = settings.auth_jwt_secret
        return jwt.decode(
            token,
            key=key,
            algorithms=settings.auth_algorithms,
            issuer=settings.auth_jwt_issuer,
            audience=settings.auth_jwt_audience,
            leeway=settings.auth_jwt_leeway_seconds,
            options=options,
        )
    except InvalidTokenError as exc:
        raise UNAUTHORIZED from exc


def _is_placeholder_token(token: str) -> bool:
    return ("{{" in token and "}}" in token) or ("${" in token and "}" in token)


def _extract_bearer_token(authorization: str) -> str:
    """从 Authorization 头中提取 Bearer token，兼容重复头被逗号拼接的场景。"""
    tokens = re.findall(r"Bearer\s+([^,\s]+)", authorization, flags=re.IGNORECASE)
    if not tokens:
        raise UNAUTHORIZED
    placeholder_seen = False
    for candidate in reversed(tokens):
        token = candidate.strip()
        if not token:
            continue
        if _is_placeholder_token(token):
            placeholder_seen = True
            continue
        return token
    if placeholder_seen:
        raise TOKEN_PLACEHOLDER_UNAUTHORIZED
    raise UNAUTHORIZED


def parse_authorization_header(authorization: str | None) -> AuthenticatedPrincipal | None:
    """解析认证头。

    未携带认证头返回 None（匿名调用方）；携带但无效时抛 401。
    """
    if not authorization or not authorization.strip():
        return None

    token = _extract_bearer_token(authorization)
    claims = _decode_jwt(token)

    subject = str(claims.get("sub") or "").strip()
    try:
        user_id = UUID(subject)
    except ValueError as exc:
        raise UNAUTHORIZED from exc

    provider = claims.get("provider")
    issuer = str(provider if isinstance(provider, str) and provider else (claims.get("iss") or "jwt"))
    return AuthenticatedPrincipal(user_id=user_id, provider=issuer, claims=claims)
