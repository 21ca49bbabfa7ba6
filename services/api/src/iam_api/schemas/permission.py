"""授权管理相关请求结构。"""

from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class RolePermissionUpdateRequest(BaseModel):
    """角色权限点授予/撤销请求。"""

    permission_ids: list[UUID] = Field(
        default_factory=list,
        description="权限点 ID 列表，重复项自动去除。",
    )

    @field_validator("permission_ids")
    @classmethod
    def dedupe_ids(cls, value: list[UUID]) -> list[UUID]:
        """去重并保持原始顺序。"""
        return list(dict.fromkeys(value))


class UserRoleAssignRequest(BaseModel):
    """用户角色分配请求。"""

    branch_id: UUID | None = Field(default=None, description="可选分支机构范围，不影响有效权限计算。")
