"""数据库会话管理。

授权写入只 flush，事务边界在路由层：
1. 路由通过 commit_changes 提交，提交成功后才失效有效权限缓存。
2. 提交失败或请求异常结束时，已登记的失效项随会话一起丢弃。
"""

from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from iam_api.core.config import get_settings
from iam_api.exceptions import translate_store_errors
from iam_api.services.permission_cache import apply_pending_invalidations, discard_pending_invalidations

settings = get_settings()

# 全局数据库引擎，开启连接预检查以减少僵尸连接影响。
engine = create_engine(settings.database_url, future=True, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, class_=Session)


def commit_changes(db: Session) -> None:
    """提交当前事务并失效受影响用户的有效权限缓存。"""
    try:
        with translate_store_errors("commit"):
            db.commit()
    except Exception:
        discard_pending_invalidations(db)
        raise
    apply_pending_invalidations(db)


def get_db() -> Generator[Session, None, None]:
    """为每个请求提供独立数据库会话。"""
    db = SessionLocal()
    try:
        yield db
    finally:
        discard_pending_invalidations(db)
        db.close()
