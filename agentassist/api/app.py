"""
AgentAssist - FastAPI 應用程式工廠
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agentassist.api import routes as http_routes
from agentassist.api import websocket as websocket_routes
from agentassist.config.settings import settings
from agentassist.services.container import ServiceContainer, build_services

logger = logging.getLogger(__name__)

system_router = APIRouter(tags=["System"])


@system_router.get("/health")
async def health():
    """存活檢查"""
    return {"status": "ok", "timestamp": datetime.now().isoformat()}


@asynccontextmanager
async def lifespan(app: FastAPI):
    # 測試會預先注入容器；正式啟動時才依 settings 建立
    if app.state.services is None:
        app.state.services = build_services()
    logger.info("✅ AgentAssist 服務就緒")
    try:
        yield
    finally:
        await app.state.services.aclose()
        logger.info("AgentAssist 服務已停止，背景工作已清除")


def create_app(services: Optional[ServiceContainer] = None) -> FastAPI:
    """
    建立應用程式並掛載所有路由。

    Args:
        services: 預先建立的服務容器；None 時於啟動階段建立。
    """
    app = FastAPI(
        title="AgentAssist",
        description="客服即時協作與知識輔助教練服務",
        version="1.0.0",
        debug=settings.DEBUG,
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for router in (system_router, http_routes.router, websocket_routes.router):
        app.include_router(router)
    return app


app = create_app()
