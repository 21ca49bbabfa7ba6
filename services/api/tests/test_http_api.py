from collections.abc import Generator
from uuid import UUID, uuid4

import jwt
import pytest
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from conftest import Seeder
from iam_api.core.config import get_settings
from iam_api.db.base import metadata
from iam_api.db.session import get_db
from iam_api.main import app
from iam_api.models.enums import RecordStatus
from iam_api.models.identity import UserRole
from iam_api.services import permission_cache as cache_module
from iam_api.services import permissions as permissions_module
from iam_api.services.permission_cache import EffectivePermissionCache


@pytest.fixture
def session_factory() -> Generator[sessionmaker, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False, class_=Session)
    engine.dispose()


@pytest.fixture
def client(session_factory: sessionmaker) -> Generator[TestClient, None, None]:
    def _override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _override_get_db
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def seeded(session_factory: sessionmaker) -> Generator[tuple[Session, Seeder], None, None]:
    db = session_factory()
    try:
        yield db, Seeder(db)
    finally:
        db.close()


def _auth(user_id: UUID) -> dict[str, str]:
    settings = get_settings()
    token = jwt.encode({"sub": str(user_id)}, settings.auth_jwt_secret, algorithm=settings.auth_algorithms[0])
    return {"Authorization": f"Bearer {token}"}


def test_health_live_returns_envelope(client: TestClient):
    response = client.get("/api/health/live")

    assert response.status_code == 200
    body = response.json()
    assert body["data"] == {"status": "ok"}
    assert body["request_id"] == response.headers["X-Request-Id"]


def test_health_ready_checks_store(client: TestClient):
    assert client.get("/api/health/ready").json()["data"] == {"status": "ready"}


def test_route_access_public_private_and_denied(client: TestClient, seeded):
    db, seed = seeded
    seed.permission("home.view", route="/home", is_public=True)
    seed.permission("security.users.view", route="/security/users")
    admin = seed.user_with_codes("security.*")
    outsider = seed.user_with_codes("reports.view")
    db.commit()

    public = client.get("/api/access", params={"route": "/home?utm=1"})
    assert public.status_code == 200
    assert public.json()["data"]["route"] == "/home"
    assert public.json()["data"]["access"] is True

    anonymous = client.get("/api/access", params={"route": "/security/users#top"})
    assert anonymous.status_code == 401
    assert anonymous.json()["error"]["code"] == "UNAUTHORIZED"
    assert anonymous.json()["error"]["details"]["route"] == "/security/users"
    assert anonymous.json()["error"]["details"]["reason"] == "authentication_required"

    allowed = client.get("/api/access", params={"route": "/security/users"}, headers=_auth(admin.id))
    assert allowed.status_code == 200

    denied = client.get("/api/access", params={"route": "/security/users"}, headers=_auth(outsider.id))
    assert denied.status_code == 403
    assert denied.json()["error"]["code"] == "FORBIDDEN"
    assert denied.json()["error"]["details"]["reason"] == "permission_missing"

    unknown = client.get("/api/access", params={"route": "/nowhere"}, headers=_auth(admin.id))
    assert unknown.status_code == 403
    assert unknown.json()["error"]["details"]["reason"] == "route_not_found"


def test_invalid_token_is_unauthorized(client: TestClient):
    response = client.get("/api/access", params={"route": "/home"}, headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED"


def test_effective_permissions_require_identity(client: TestClient, seeded):
    db, seed = seeded
    user = seed.user_with_codes("reports.view", "reports.export")
    db.commit()

    assert client.get("/api/access/permissions").status_code == 401
    response = client.get("/api/access/permissions", headers=_auth(user.id))
    assert response.json()["data"]["permission_codes"] == ["reports.export", "reports.view"]


def test_user_menu_with_alert_and_filtered_items(client: TestClient, seeded):
    db, seed = seeded
    seed.menu_item("landing", route="/", is_public=True)
    seed.menu_item("reports", route="/reports", permission=seed.permission("reports.view"))
    seed.menu_item("billing", route="/billing", permission=seed.permission("billing.view"))
    reader = seed.user_with_codes("reports.view")
    nobody = seed.user()
    db.commit()

    menu = client.get("/api/menu", headers=_auth(reader.id)).json()["data"]
    assert [item["id"] for item in menu["menu"]] == ["reports"]
    assert menu["alert"] is None

    empty = client.get("/api/menu", headers=_auth(nobody.id)).json()["data"]
    assert empty["menu"] == []
    assert empty["alert"]["user_id"] == str(nobody.id)

    public = client.get("/api/menu/public").json()["data"]
    assert [item["id"] for item in public] == ["landing"]


def test_role_menu_preview_is_guarded(client: TestClient, seeded):
    db, seed = seeded
    reports = seed.permission("reports.view")
    role = seed.role("viewer")
    seed.grant(role, reports)
    seed.menu_item("reports", permission=reports)
    manager = seed.user_with_codes("roles.view")
    outsider = seed.user_with_codes("reports.view")
    db.commit()

    assert client.get(f"/api/menu/roles/{role.id}").status_code == 401
    forbidden = client.get(f"/api/menu/roles/{role.id}", headers=_auth(outsider.id))
    assert forbidden.status_code == 403
    assert forbidden.json()["error"]["details"]["required_permissions"] == ["roles.view"]

    preview = client.get(f"/api/menu/roles/{role.id}", headers=_auth(manager.id))
    assert [item["id"] for item in preview.json()["data"]["menu"]] == ["reports"]

    missing = client.get(f"/api/menu/roles/{uuid4()}", headers=_auth(manager.id))
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "ROLE_NOT_FOUND"


def test_role_permission_and_user_role_writes(client: TestClient, seeded):
    db, seed = seeded
    admin = seed.user_with_codes("roles.edit", "security.accesses.manage")
    role = seed.role("editor")
    docs = seed.permission("docs.edit")
    member = seed.user()
    db.commit()
    headers = _auth(admin.id)

    granted = client.put(f"/api/roles/{role.id}/permissions", json={"permission_ids": [str(docs.id)]}, headers=headers)
    assert granted.status_code == 200
    assert [item["code"] for item in granted.json()["data"]["permissions"]] == ["docs.edit"]

    assigned = client.put(f"/api/users/{member.id}/roles/{role.id}", headers=headers)
    assert assigned.status_code == 200
    assert assigned.json()["data"]["status"] == 1
    codes = client.get("/api/access/permissions", headers=_auth(member.id)).json()["data"]["permission_codes"]
    assert codes == ["docs.edit"]

    revoked = client.request(
        "DELETE",
        f"/api/roles/{role.id}/permissions",
        json={"permission_ids": [str(docs.id)]},
        headers=headers,
    )
    assert revoked.json()["data"]["changed"] == 1
    assert revoked.json()["data"]["permissions"] == []

    removed = client.delete(f"/api/users/{member.id}/roles/{role.id}", headers=headers)
    assert removed.json()["data"]["changed"] == 1

    not_found = client.put(f"/api/users/{uuid4()}/roles/{role.id}", headers=headers)
    assert not_found.status_code == 404
    assert not_found.json()["error"]["details"]["resource_type"] == "user"


def test_writes_require_permission(client: TestClient, seeded):
    db, seed = seeded
    viewer = seed.user_with_codes("roles.view")
    role = seed.role("editor")
    db.commit()

    response = client.put(f"/api/roles/{role.id}/permissions", json={"permission_ids": []}, headers=_auth(viewer.id))

    assert response.status_code == 403
    assert response.json()["error"]["details"]["policy"] == "any"


def test_store_failure_returns_503(client: TestClient, seeded):
    db, seed = seeded
    user = seed.user_with_codes("reports.view")
    db.commit()
    broken_engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    broken_factory = sessionmaker(bind=broken_engine, autoflush=False, autocommit=False, class_=Session)

    def _broken_db():
        db = broken_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _broken_db

    response = client.get("/api/access/permissions", headers=_auth(user.id))

    assert response.status_code == 503
    assert response.json()["error"]["code"] == "PERMISSION_STORE_UNAVAILABLE"
    broken_engine.dispose()


class _NoDeleteRedis:
    """读写正常、删除失败的 Redis 替身。"""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value

    def delete(self, *keys):
        raise RedisConnectionError("redis delete failed")

    def scan_iter(self, match):
        return [key for key in list(self.store) if key.startswith(match.rstrip("*"))]


def test_cache_invalidation_failure_returns_503_after_commit(client: TestClient, seeded, monkeypatch):
    db, seed = seeded
    admin = seed.user_with_codes("security.accesses.manage")
    role = seed.role("editor")
    member = seed.user()
    db.commit()
    cache = EffectivePermissionCache(ttl_seconds=60, prefix="iam:perms:", redis_client=_NoDeleteRedis())
    monkeypatch.setattr(permissions_module, "get_permission_cache", lambda: cache)
    monkeypatch.setattr(cache_module, "get_permission_cache", lambda: cache)

    response = client.put(f"/api/users/{member.id}/roles/{role.id}", headers=_auth(admin.id))

    assert response.status_code == 503
    assert response.json()["error"]["code"] == "PERMISSION_CACHE_UNAVAILABLE"
    assert response.json()["error"]["details"]["operation"] == "invalidate_user"
    db.expire_all()
    statuses = db.execute(select(UserRole.status).where(UserRole.user_id == member.id)).scalars().all()
    assert statuses == [RecordStatus.ACTIVE]
