"""导航菜单模型。"""

from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from iam_api.models.base import Base, RecordStatusMixin, TimestampMixin, UUIDPrimaryKeyMixin


class MenuItem(Base, UUIDPrimaryKeyMixin, TimestampMixin, RecordStatusMixin):
    """菜单节点。

    说明：
    1. parent_id 只是导航回指，树结构由服务层组装成以 menu_id 为键的平铺结构。
    2. columns / submenu 为只读投影（JSON），不是独立实体。
       columns: [{"title": str, "items": [link, ...]}]
       submenu: [link, ...]
       link:    {"id", "label", "route", "description"?, "permission_code"?, "is_public"?}
    """

    __tablename__ = "menu_items"

    # 稳定菜单标识（如 home / products）。
    menu_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    label: Mapped[str] = mapped_column(String(128), nullable=False)
    # 前端路由（如 /security/users）。
    route: Mapped[str | None] = mapped_column(String(256), index=True)
    # 父节点主键 ID（menu_items.id）。
    parent_id: Mapped[UUID | None] = mapped_column(index=True)
    # 访问该节点所需的权限点 ID，为空表示登录即可见。
    permission_id: Mapped[UUID | None] = mapped_column(index=True)
    columns: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON)
    submenu: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON)
    icon: Mapped[str | None] = mapped_column(String(64))
    description: Mapped[str | None] = mapped_column(Text)
    # 公开节点由前端自行展示，不出现在按权限过滤的菜单中。
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # 同级展示顺序。
    order: Mapped[int] = mapped_column("sort_order", Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<MenuItem(menu_id='{self.menu_id}', route='{self.route}')>"
