from collections.abc import Generator
from typing import Any
from uuid import UUID, uuid4

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from starlette.requests import Request

from iam_api.db.base import metadata
from iam_api.models.enums import PermissionType, RecordStatus
from iam_api.models.identity import Role, User, UserRole
from iam_api.models.menu import MenuItem
from iam_api.models.permission import Permission, RolePermission


def make_request(path: str = "/test", method: str = "GET") -> Request:
    request = Request({"type": "http", "method": method, "path": path, "headers": []})
    request.state.request_id = "test-request-id"
    return request


class Seeder:
    """测试数据构造器，每次写入后 flush，便于后续查询立即可见。"""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.company_id = uuid4()

    def _save(self, entity: Any) -> Any:
        self.db.add(entity)
        self.db.flush()
        return entity

    def user(self, email: str | None = None, *, status: RecordStatus = RecordStatus.ACTIVE) -> User:
        email = email or f"user-{uuid4().hex[:8]}@example.com"
        return self._save(User(id=uuid4(), email=email, display_name=email.split("@")[0], status=status))

    def role(self, code: str, *, status: RecordStatus = RecordStatus.ACTIVE) -> Role:
        return self._save(Role(id=uuid4(), company_id=self.company_id, code=code, name=code, status=status))

    def permission(
        self,
        code: str,
        *,
        route: str | None = None,
        is_public: bool = False,
        status: RecordStatus = RecordStatus.ACTIVE,
        type_: PermissionType = PermissionType.PAGE,
    ) -> Permission:
        return self._save(
            Permission(
                id=uuid4(),
                code=code,
                name=code,
                type=type_,
                route=route,
                is_public=is_public,
                status=status,
            )
        )

    def grant(self, role: Role, *permissions: Permission, status: RecordStatus = RecordStatus.ACTIVE) -> None:
        for permission in permissions:
            self._save(RolePermission(id=uuid4(), role_id=role.id, permission_id=permission.id, status=status))

    def assign(
        self,
        user: User,
        role: Role,
        *,
        status: RecordStatus = RecordStatus.ACTIVE,
        branch_id: UUID | None = None,
    ) -> UserRole:
        return self._save(UserRole(id=uuid4(), user_id=user.id, role_id=role.id, branch_id=branch_id, status=status))

    def user_with_codes(self, *codes: str) -> User:
        """创建用户 + 专属角色 + 权限点（已存在的权限码直接复用）。"""
        user = self.user()
        role = self.role(f"role-{uuid4().hex[:8]}")
        for code in codes:
            permission = self.db.execute(select(Permission).where(Permission.code == code)).scalar_one_or_none()
            self.grant(role, permission or self.permission(code))
        self.assign(user, role)
        return user

    def menu_item(
        self,
        menu_id: str,
        *,
        route: str | None = None,
        parent: MenuItem | None = None,
        permission: Permission | None = None,
        columns: list[dict] | None = None,
        submenu: list[dict] | None = None,
        is_public: bool = False,
        order: int = 0,
        status: RecordStatus = RecordStatus.ACTIVE,
    ) -> MenuItem:
        return self._save(
            MenuItem(
                id=uuid4(),
                menu_id=menu_id,
                label=menu_id.title(),
                route=route,
                parent_id=parent.id if parent else None,
                permission_id=permission.id if permission else None,
                columns=columns,
                submenu=submenu,
                is_public=is_public,
                order=order,
                status=status,
            )
        )


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    metadata.create_all(engine)
    local_session = sessionmaker(bind=engine, autoflush=False, autocommit=False, class_=Session)
    db = local_session()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture
def broken_session() -> Generator[Session, None, None]:
    """未建表的会话，任何查询都会触发存储异常。"""
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    local_session = sessionmaker(bind=engine, autoflush=False, autocommit=False, class_=Session)
    db = local_session()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture
def seed(db_session: Session) -> Seeder:
    return Seeder(db_session)
