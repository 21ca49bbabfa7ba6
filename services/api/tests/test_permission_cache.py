from uuid import uuid4

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from iam_api.core.config import get_settings
from iam_api.db.session import commit_changes
from iam_api.exceptions import PermissionCacheError, PermissionStoreError
from iam_api.models.enums import RecordStatus
from iam_api.models.identity import UserRole
from iam_api.services import assignments as assignments_module
from iam_api.services import permission_cache as cache_module
from iam_api.services import permissions as permissions_module
from iam_api.services.permission_cache import EffectivePermissionCache


class _DictRedis:
    """最小 Redis 替身，仅实现缓存用到的命令。"""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttl: dict[str, int] = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttl[key] = ttl

    def delete(self, *keys):
        for key in keys:
            self.store.pop(key, None)

    def scan_iter(self, match):
        prefix = match.rstrip("*")
        return [key for key in list(self.store) if key.startswith(prefix)]


class _ReadOnlyRedis(_DictRedis):
    """读写正常、删除失败的 Redis 替身。"""

    def delete(self, *keys):
        raise RedisConnectionError("redis delete failed")


class _DownRedis:
    def __getattr__(self, name):
        def _fail(*_args, **_kwargs):
            raise RedisConnectionError("redis down")

        return _fail


@pytest.fixture
def local_cache(monkeypatch) -> EffectivePermissionCache:
    cache = EffectivePermissionCache(ttl_seconds=30, prefix="test:perms:")
    monkeypatch.setattr(permissions_module, "get_permission_cache", lambda: cache)
    monkeypatch.setattr(cache_module, "get_permission_cache", lambda: cache)
    return cache


def test_disabled_cache_is_noop():
    cache = EffectivePermissionCache(ttl_seconds=0, prefix="p:")
    user_id = uuid4()
    cache.set(user_id, ["a"])

    assert not cache.enabled
    assert cache.get(user_id) is None


def test_local_entries_expire(monkeypatch):
    now = [100.0]
    monkeypatch.setattr(cache_module.time, "monotonic", lambda: now[0])
    cache = EffectivePermissionCache(ttl_seconds=10, prefix="p:")
    user_id = uuid4()
    cache.set(user_id, ["reports.view"])

    assert cache.get(user_id) == ["reports.view"]
    now[0] = 111.0
    assert cache.get(user_id) is None


def test_cached_codes_are_served_until_invalidated(db_session: Session, seed, local_cache):
    user = seed.user_with_codes("reports.view")
    assert permissions_module.get_effective_permission_codes(db_session, user.id) == ["reports.view"]

    for assignment in db_session.execute(select(UserRole).where(UserRole.user_id == user.id)).scalars():
        assignment.status = RecordStatus.INACTIVE
    db_session.flush()

    assert permissions_module.get_effective_permission_codes(db_session, user.id) == ["reports.view"]
    local_cache.invalidate_user(user.id)
    assert permissions_module.get_effective_permission_codes(db_session, user.id) == []


def test_assignment_writes_invalidate_cache_after_commit(db_session: Session, seed, local_cache):
    role = seed.role("editor")
    permission = seed.permission("docs.edit")
    user = seed.user()
    assert permissions_module.get_effective_permission_codes(db_session, user.id) == []

    assignments_module.assign_user_role(db_session, user_id=user.id, role_id=role.id)
    assignments_module.assign_role_permissions(db_session, role_id=role.id, permission_ids=[permission.id])
    # 未提交前缓存保持不变。
    assert permissions_module.get_effective_permission_codes(db_session, user.id) == []

    commit_changes(db_session)
    assert permissions_module.get_effective_permission_codes(db_session, user.id) == ["docs.edit"]

    assignments_module.revoke_user_role(db_session, user_id=user.id, role_id=role.id)
    commit_changes(db_session)
    assert permissions_module.get_effective_permission_codes(db_session, user.id) == []


def test_failed_commit_discards_pending_invalidations(db_session: Session, seed, local_cache, monkeypatch):
    user = seed.user_with_codes("reports.view")
    role = seed.role("auditor")
    assert permissions_module.get_effective_permission_codes(db_session, user.id) == ["reports.view"]
    assignments_module.assign_user_role(db_session, user_id=user.id, role_id=role.id)

    def _fail_commit():
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(db_session, "commit", _fail_commit)
    with pytest.raises(PermissionStoreError):
        commit_changes(db_session)

    assert cache_module.PENDING_INVALIDATIONS_KEY not in db_session.info
    assert local_cache.get(user.id) == ["reports.view"]


def test_invalidation_failure_after_commit_raises(db_session: Session, seed, monkeypatch):
    client = _ReadOnlyRedis()
    cache = EffectivePermissionCache(ttl_seconds=60, prefix="iam:perms:", redis_client=client)
    monkeypatch.setattr(permissions_module, "get_permission_cache", lambda: cache)
    monkeypatch.setattr(cache_module, "get_permission_cache", lambda: cache)
    role = seed.role("editor")
    user = seed.user()
    seed.assign(user, role)
    assert permissions_module.get_effective_permission_codes(db_session, user.id) == []
    assert f"iam:perms:{user.id}" in client.store

    revoked = assignments_module.revoke_user_role(db_session, user_id=user.id, role_id=role.id)
    with pytest.raises(PermissionCacheError) as exc_info:
        commit_changes(db_session)

    assert revoked == 1
    assert exc_info.value.status_code == 503
    assert exc_info.value.details()["operation"] == "invalidate_user"
    # 授权变更已提交。
    statuses = db_session.execute(select(UserRole.status).where(UserRole.user_id == user.id)).scalars().all()
    assert statuses == [RecordStatus.INACTIVE]



def test_redis_backend_round_trip_and_prefix_invalidation():
    client = _DictRedis()
    cache = EffectivePermissionCache(ttl_seconds=60, prefix="iam:perms:", redis_client=client)
    first, second = uuid4(), uuid4()
    cache.set(first, ["a.view"])
    cache.set(second, ["b.view"])
    client.store["other:key"] = "x"

    assert cache.get(first) == ["a.view"]
    assert client.ttl[f"iam:perms:{first}"] == 60
    cache.invalidate_all()
    assert cache.get(second) is None
    assert "other:key" in client.store


def test_redis_read_and_write_failures_fall_back_to_recompute():
    cache = EffectivePermissionCache(ttl_seconds=60, prefix="iam:perms:", redis_client=_DownRedis())
    user_id = uuid4()

    cache.set(user_id, ["a.view"])
    assert cache.get(user_id) is None


def test_redis_invalidation_failures_raise():
    cache = EffectivePermissionCache(ttl_seconds=60, prefix="iam:perms:", redis_client=_DownRedis())

    with pytest.raises(PermissionCacheError):
        cache.invalidate_user(uuid4())
    with pytest.raises(PermissionCacheError):
        cache.invalidate_all()


def test_cache_factory_reads_settings(monkeypatch):
    monkeypatch.setenv("IAM_PERMISSION_CACHE_TTL_SECONDS", "15")
    monkeypatch.setenv("IAM_PERMISSION_CACHE_PREFIX", "unit:")
    monkeypatch.delenv("IAM_REDIS_URL", raising=False)
    get_settings.cache_clear()
    cache_module.get_permission_cache.cache_clear()
    try:
        cache = cache_module.get_permission_cache()
        assert cache.enabled
        assert cache.ttl_seconds == 15
        assert cache.prefix == "unit:"
    finally:
        get_settings.cache_clear()
        cache_module.get_permission_cache.cache_clear()
