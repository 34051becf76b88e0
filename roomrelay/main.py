"""
roomrelay.main
~~~~~~~~~~~~~~

FastAPI 应用入口 —— 注册路由、挂载中间件、定义生命周期。

- 任意路径上的 WebSocket 连接 → 聊天中继
- 任意路径上的普通 HTTP 请求 → ``200 ok``（供负载均衡 / PaaS 健康探测）
"""
from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from roomrelay.api import ws
from roomrelay.core.config import settings
from roomrelay.core.logging import get_logger, setup_logging
from roomrelay.services.chat_hub import ChatHub
from roomrelay.services.transport import WebSocketTransport

# 初始化日志系统（必须在其他模块之前）
setup_logging()
logger = get_logger(__name__)


# ── 生命周期 ──────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期钩子：创建聊天中枢并启停存活巡检。"""
    # ── 启动 ──
    transport = WebSocketTransport(queue_size=settings.OUTBOUND_QUEUE_SIZE)
    hub = ChatHub(
        transport,
        history_limit=settings.HISTORY_LIMIT,
        heartbeat_interval=settings.heartbeat_interval,
    )
    app.state.transport = transport
    app.state.chat_hub = hub
    hub.start()
    logger.info(
        "🚀 应用已启动 | env=%s | port=%d | serverSessionId=%s | log_level=%s",
        settings.ENVIRONMENT,
        settings.PORT,
        hub.server_session_id,
        settings.effective_log_level,
    )
    yield
    # ── 关闭 ──（内存状态直接丢弃）
    await hub.stop()
    logger.info("👋 应用已关闭")


# ── 创建 FastAPI 实例 ─────────────────────────────────────────────────

# 关闭自带的文档路由，保证任意 HTTP 路径都落到健康检查上
app: FastAPI = FastAPI(
    title=settings.PROJECT_NAME,
    description="房间制实时聊天中继",
    version=settings.VERSION,
    debug=settings.debug,
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
)

# ── CORS 中间件 ───────────────────────────────────────────────────────
if settings.allow_cors_all_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

# ── 路由挂载 ──────────────────────────────────────────────────────────
app.include_router(ws.router, tags=["WebSocket Relay"])


@app.api_route(
    "/{path:path}",
    methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    tags=["System"],
)
async def health_check(path: str) -> PlainTextResponse:
    """对任意普通 HTTP 请求返回 ``200 ok``。"""
    return PlainTextResponse("ok")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "roomrelay.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.reload,  # 仅 dev 环境开启热重载
        log_level=settings.effective_log_level.lower(),
    )
