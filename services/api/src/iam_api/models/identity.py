"""用户、角色与用户角色分配模型。"""

from uuid import UUID

from sqlalchemy import Boolean, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from iam_api.models.base import Base, RecordStatusMixin, TimestampMixin, UUIDPrimaryKeyMixin


class User(Base, UUIDPrimaryKeyMixin, TimestampMixin, RecordStatusMixin):
    """本地用户实体，仅保留授权判断需要的字段。"""

    __tablename__ = "users"

    # 登录与通知主邮箱，系统内全局唯一。
    email: Mapped[str] = mapped_column(String(256), nullable=False, unique=True)
    # 前端展示名。
    display_name: Mapped[str] = mapped_column(String(128), nullable=False)


class Role(Base, UUIDPrimaryKeyMixin, TimestampMixin, RecordStatusMixin):
    """角色实体：租户（company）内具名的权限集合。"""

    __tablename__ = "roles"
    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uk_role_company_code"),
        UniqueConstraint("company_id", "name", name="uk_role_company_name"),
    )

    # 所属租户 ID。
    company_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    # 租户内唯一角色编码（如 admin / viewer）。
    code: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(128))
    description: Mapped[str | None] = mapped_column(Text)
    # 系统角色禁止删除与改名。
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<Role(code='{self.code}', company_id='{self.company_id}')>"


class UserRole(Base, UUIDPrimaryKeyMixin, TimestampMixin, RecordStatusMixin):
    """用户-角色分配。

    同一用户可同时持有多个 ACTIVE 角色，branch_id 仅作分配元数据，不参与有效权限计算。
    """

    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role_id", "branch_id", name="uk_user_role_branch"),)

    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    role_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    # 可选分支机构范围。
    branch_id: Mapped[UUID | None] = mapped_column(index=True)
