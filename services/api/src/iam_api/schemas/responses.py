"""接口成功响应 `data` 字段结构定义。

说明：
1. 所有业务接口统一返回 `SuccessResponse[data=...]`。
2. 本文件专注于定义各接口在 `data` 中的业务字段。
3. 字段描述会直接用于 Swagger 展示，便于联调时理解含义。
"""

from uuid import UUID

from pydantic import Field

from iam_api.schemas.common import BaseSchema


class HealthStatusData(BaseSchema):
    """健康检查返回结构。"""

    status: str = Field(description="健康状态值，常见为 ok 或 ready。")


class RouteAccessData(BaseSchema):
    """路由访问判定通过时的返回结构。"""

    route: str = Field(description="规范化后的前端路由。")
    access: bool = Field(description="是否允许访问，成功响应恒为 true。")
    permission_code: str | None = Field(default=None, description="保护该路由的权限码。")


class EffectivePermissionsData(BaseSchema):
    """当前用户有效权限码。"""

    user_id: UUID = Field(description="当前用户 ID。")
    permission_codes: list[str] = Field(default_factory=list, description="有效权限码（升序，可能包含通配码）。")


class MenuLinkData(BaseSchema):
    """菜单叶子链接。"""

    id: str = Field(description="链接标识。")
    label: str = Field(description="展示文案。")
    route: str = Field(default="", description="前端路由。")
    description: str | None = Field(default=None, description="可选描述。")


class MenuGroupData(BaseSchema):
    """菜单分栏。"""

    title: str = Field(description="分栏标题。")
    items: list[MenuLinkData] = Field(default_factory=list, description="分栏内可见链接。")


class MenuEntryData(BaseSchema):
    """可见菜单项。"""

    id: str = Field(description="稳定菜单标识（menu_id）。")
    label: str = Field(description="展示文案。")
    route: str | None = Field(default=None, description="前端路由。")
    icon: str | None = Field(default=None, description="图标标识。")
    columns: list[MenuGroupData] | None = Field(default=None, description="多栏菜单（过滤后为空的分栏已移除）。")
    submenu: list[MenuLinkData] | None = Field(default=None, description="子菜单（含可见子节点）。")


class MenuAlertData(BaseSchema):
    """无权限提示。"""

    user_id: UUID | None = Field(default=None, description="用户 ID（按用户查询时）。")
    role_id: UUID | None = Field(default=None, description="角色 ID（按角色预览时）。")
    message: str = Field(description="提示信息。")


class MenuData(BaseSchema):
    """菜单返回结构。"""

    menu: list[MenuEntryData] = Field(default_factory=list, description="过滤后的菜单。")
    alert: MenuAlertData | None = Field(default=None, description="未分配任何权限时的提示。")


class PermissionSummary(BaseSchema):
    """权限点摘要。"""

    id: UUID = Field(description="权限点 ID。")
    code: str = Field(description="权限编码。")
    name: str = Field(description="权限展示名。")


class RolePermissionsData(BaseSchema):
    """角色权限变更结果。"""

    role_id: UUID = Field(description="角色 ID。")
    permissions: list[PermissionSummary] = Field(default_factory=list, description="角色当前 ACTIVE 权限点。")
    changed: int = Field(description="本次变更涉及的权限点数量。")


class UserRoleAssignmentData(BaseSchema):
    """用户角色分配结果。"""

    user_id: UUID = Field(description="用户 ID。")
    role_id: UUID = Field(description="角色 ID。")
    branch_id: UUID | None = Field(default=None, description="分支机构范围。")
    status: int = Field(description="分配状态（1 生效 / 0 停用）。")
    changed: int = Field(description="本次变更涉及的分配记录数量。")
