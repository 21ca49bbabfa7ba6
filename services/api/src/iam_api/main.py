"""FastAPI 应用入口点。"""

import logging

from fastapi import FastAPI

from iam_api.api.router import api_router
from iam_api.core.config import get_settings
from iam_api.exceptions import register_exception_handlers
from iam_api.middlewares import register_middlewares

settings = get_settings()


def setup_logging(level: str) -> None:
    """初始化进程日志格式。"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app() -> FastAPI:
    """创建并配置 FastAPI 应用实例。"""
    setup_logging(settings.log_level)
    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        debug=settings.app_debug,
        description=(
            "多租户身份授权服务。\n\n"
            "所有业务接口统一返回：`{request_id, data, meta}`。\n"
            "通过访问令牌进行认证，令牌 `sub` 为本地用户 ID；未携带令牌视为匿名调用方。"
        ),
        openapi_tags=[
            {"name": "health", "description": "服务存活与就绪探针。"},
            {"name": "access", "description": "运行时路由访问判定与有效权限查询（无副作用）。"},
            {"name": "menu", "description": "按权限过滤的导航菜单。"},
            {"name": "roles", "description": "角色权限与用户角色授权维护。"},
        ],
    )

    register_middlewares(app)
    register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()
