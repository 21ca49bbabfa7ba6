"""请求级权限策略执行。"""

from collections.abc import Sequence
from dataclasses import dataclass
import logging
from uuid import UUID

from sqlalchemy.orm import Session

from iam_api.exceptions import AuthenticationRequiredError, PermissionDeniedError
from iam_api.services.permissions import has_all_permissions, has_any_permission

logger = logging.getLogger("iam_api.guard")


@dataclass(frozen=True)
class AccessDecision:
    """放行结果。拒绝以异常表达，不返回 AccessDecision。"""

    user_id: UUID | None
    required_codes: tuple[str, ...]
    require_all: bool


def enforce_permissions(
    db: Session,
    *,
    user_id: UUID | None,
    required_codes: Sequence[str],
    require_all: bool = False,
    route: str | None = None,
) -> AccessDecision:
    """按 (required_codes, require_all) 策略校验调用方。

    规则：
    1. 未声明权限码时直接放行（匿名亦可）。
    2. 声明了权限码但无调用方身份，抛 AuthenticationRequiredError。
    3. require_all 为 True 时要求全部命中，否则任一命中即可。
    4. 不满足时抛 PermissionDeniedError。
    """
    codes = tuple(required_codes)
    if not codes:
        return AccessDecision(user_id=user_id, required_codes=codes, require_all=require_all)

    if user_id is None:
        logger.info("access denied route=%s reason=authentication_required required=%s", route, list(codes))
        raise AuthenticationRequiredError(route)

    check = has_all_permissions if require_all else has_any_permission
    if not check(db, user_id, codes):
        logger.info(
            "access denied route=%s user_id=%s required=%s policy=%s",
            route,
            user_id,
            list(codes),
            "all" if require_all else "any",
        )
        raise PermissionDeniedError(route=route, required_codes=codes, require_all=require_all)

    return AccessDecision(user_id=user_id, required_codes=codes, require_all=require_all)
