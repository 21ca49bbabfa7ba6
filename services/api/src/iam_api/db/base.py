"""数据库元数据导出。

导入全部模型后 `Base.metadata` 才包含完整表结构，供测试建表与结构比对使用。
生产库结构由迁移脚本维护，这里不执行自动建表。
"""

import iam_api.models  # noqa: F401
from iam_api.models.base import Base

metadata = Base.metadata

__all__ = ["Base", "metadata"]
