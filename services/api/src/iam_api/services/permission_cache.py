"""有效权限短期缓存。

默认关闭（TTL=0），每次请求实时计算。开启后：
1. 配置了 Redis 时写入 Redis（setex），多实例共享。
2. 未配置 Redis 时使用进程内字典，按过期时间惰性清理。
3. 授权关系变更时写入侧先登记（mark_permissions_changed），事务提交后统一失效。
4. 读写失败降级为实时计算；失效失败抛出 PermissionCacheError，不允许静默保留旧权限。
"""

from functools import lru_cache
import json
import logging
from threading import Lock
import time
from uuid import UUID

from redis import Redis
from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from iam_api.core.config import get_settings
from iam_api.exceptions import PermissionCacheError

logger = logging.getLogger("iam_api.permission_cache")

# Session.info 中登记待失效用户的键；集合内的 None 表示全部用户。
PENDING_INVALIDATIONS_KEY = "iam_pending_permission_invalidations"


class EffectivePermissionCache:
    """以用户 ID 为键的有效权限码缓存。"""

    def __init__(self, *, ttl_seconds: int, prefix: str, redis_client: Redis | None = None) -> None:
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix
        self._redis = redis_client
        self._local: dict[str, tuple[float, list[str]]] = {}
        self._lock = Lock()

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def _key(self, user_id: UUID) -> str:
        return f"{self.prefix}{user_id}"

    def _cleanup_local(self, now: float) -> None:
        expired = [key for key, (expires_at, _) in self._local.items() if expires_at <= now]
        for key in expired:
            self._local.pop(key, None)

    def get(self, user_id: UUID) -> list[str] | None:
        """读取缓存；未命中或后端不可用返回 None，由调用方重新计算。"""
        if not self.enabled:
            return None
        key = self._key(user_id)
        if self._redis is not None:
            try:
                raw = self._redis.get(key)
            except RedisError:
                logger.warning("permission cache read failed key=%s", key)
                return None
            if raw is None:
                return None
            return list(json.loads(raw))

        now = time.monotonic()
        with self._lock:
            self._cleanup_local(now)
            entry = self._local.get(key)
            return list(entry[1]) if entry else None

    def set(self, user_id: UUID, codes: list[str]) -> None:
        if not self.enabled:
            return
        key = self._key(user_id)
        if self._redis is not None:
            try:
                self._redis.setex(key, self.ttl_seconds, json.dumps(codes))
            except RedisError:
                logger.warning("permission cache write failed key=%s", key)
            return

        with self._lock:
            self._local[key] = (time.monotonic() + self.ttl_seconds, list(codes))

    def invalidate_user(self, user_id: UUID) -> None:
        """失效单个用户的缓存。"""
        key = self._key(user_id)
        if self._redis is not None:
            try:
                self._redis.delete(key)
            except RedisError as exc:
                logger.warning("permission cache invalidation failed key=%s", key)
                raise PermissionCacheError("invalidate_user") from exc
            return

        with self._lock:
            self._local.pop(key, None)

    def invalidate_all(self) -> None:
        """失效全部用户的缓存（角色权限变更影响面不可枚举时使用）。"""
        if self._redis is not None:
            try:
                keys = list(self._redis.scan_iter(match=f"{self.prefix}*"))
                if keys:
                    self._redis.delete(*keys)
            except RedisError as exc:
                logger.warning("permission cache invalidation failed prefix=%s", self.prefix)
                raise PermissionCacheError("invalidate_all") from exc
            return

        with self._lock:
            self._local.clear()


@lru_cache
def get_permission_cache() -> EffectivePermissionCache:
    """按当前配置返回缓存单例。"""
    settings = get_settings()
    redis_client = None
    if settings.permission_cache_enabled and settings.redis_url:
        redis_client = Redis.from_url(settings.redis_url, decode_responses=True)
    return EffectivePermissionCache(
        ttl_seconds=settings.permission_cache_ttl_seconds,
        prefix=settings.permission_cache_prefix,
        redis_client=redis_client,
    )


def mark_permissions_changed(db: Session, *, user_id: UUID | None = None) -> None:
    """登记本事务提交后需要失效的缓存；user_id 为空表示全部用户。"""
    db.info.setdefault(PENDING_INVALIDATIONS_KEY, set()).add(user_id)


def discard_pending_invalidations(db: Session) -> set[UUID | None]:
    """取出并清空已登记的失效项。"""
    return db.info.pop(PENDING_INVALIDATIONS_KEY, set())


def apply_pending_invalidations(db: Session) -> None:
    """执行已登记的失效，须在事务提交之后调用。"""
    pending = discard_pending_invalidations(db)
    if not pending:
        return
    cache = get_permission_cache()
    if None in pending:
        cache.invalidate_all()
        return
    for user_id in pending:
        cache.invalidate_user(user_id)
