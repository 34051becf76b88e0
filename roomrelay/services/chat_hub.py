"""
roomrelay.services.chat_hub
~~~~~~~~~~~~~~~~~~~~~~~~~~~

聊天中枢 —— 持有全部共享状态（连接登记、昵称目录、房间、历史），
并用一把 ``asyncio.Lock`` 串行化所有修改。

连接建立、每条入站事件、断开清理以及存活巡检都在锁内完整执行（包括由此
触发的广播），所以两个同名的并发 ``identify`` 不可能同时成功。

在 FastAPI lifespan 中创建并挂载于 ``app.state.chat_hub``。
"""
from __future__ import annotations

import asyncio
import contextlib
import uuid

from roomrelay.core.logging import get_logger
from roomrelay.schemas.events import ping_event
from roomrelay.services.connection_registry import ConnectionRegistry
from roomrelay.services.history import HistoryStore, now_ms
from roomrelay.services.identity_directory import IdentityDirectory
from roomrelay.services.message_router import MessageRouter
from roomrelay.services.room_registry import DEFAULT_ROOM_ID, RoomRegistry
from roomrelay.services.session import ConnId, SessionState
from roomrelay.services.transport import Transport

logger = get_logger(__name__)


class ChatHub:
    """聊天中继的唯一协调边界。

    - ``connect(conn)``            → 登记连接，下发 ``server_info`` 与 ``require_identity``
    - ``handle_text(conn, text)``  → 处理一帧入站文本
    - ``disconnect(conn)``         → 离房 + 清除昵称 + 注销（可重复调用）
    - ``sweep()``                  → 执行一轮存活巡检
    - ``start()`` / ``stop()``     → 启停周期巡检任务

    Attributes:
        transport: 连接传输层。
        heartbeat_interval: 巡检间隔（秒）。
        server_session_id: 服务实例标识。
    """

    def __init__(
        self,
        transport: Transport,
        *,
        history_limit: int = 100,
        heartbeat_interval: float = 5.0,
        default_room_id: str = DEFAULT_ROOM_ID,
    ) -> None:
        self.transport = transport
        self.heartbeat_interval = heartbeat_interval
        self.server_session_id: str = uuid.uuid4().hex

        self.connections = ConnectionRegistry()
        self.identities = IdentityDirectory()
        self.history = HistoryStore(limit=history_limit)
        self.rooms = RoomRegistry(transport, self.history, default_room_id=default_room_id)
        self.router = MessageRouter(
            transport=transport,
            connections=self.connections,
            identities=self.identities,
            rooms=self.rooms,
            history=self.history,
            server_session_id=self.server_session_id,
        )

        self._lock = asyncio.Lock()
        self._sweeper: asyncio.Task[None] | None = None

    # ── 连接事件 ──────────────────────────────────────────────────────

    async def connect(self, conn: ConnId) -> None:
        async with self._lock:
            self.router.on_connect(conn)
        logger.info("连接已登记 | 在线: %d", len(self.connections))

    async def handle_text(self, conn: ConnId, text: str) -> None:
        async with self._lock:
            if not self.connections.is_registered(conn):
                # 已被巡检断开，关闭帧发出前到达的残余消息直接丢弃
                return
            self.router.dispatch(conn, text)

    async def disconnect(self, conn: ConnId) -> None:
        async with self._lock:
            if not self.connections.is_registered(conn):
                return
            self.router.on_disconnect(conn)
        logger.info("连接已注销 | 在线: %d", len(self.connections))

    def state_of(self, conn: ConnId) -> SessionState:
        return self.router.state_of(conn)

    # ── 存活巡检 ──────────────────────────────────────────────────────

    async def sweep(self) -> list[ConnId]:
        """执行一轮存活巡检，返回被断开的连接。"""
        async with self._lock:
            terminated = self.connections.sweep(probe=self._probe, terminate=self._terminate)
        if terminated:
            logger.info("存活巡检断开 %d 个失联连接 | 在线: %d", len(terminated), len(self.connections))
        return terminated

    def _probe(self, conn: ConnId) -> None:
        self.transport.send(conn, ping_event(now_ms()).encode())

    def _terminate(self, conn: ConnId) -> None:
        logger.info("心跳超时，强制断开 | conn=%s", conn)
        self.transport.terminate(conn)
        self.router.on_disconnect(conn)

    def start(self) -> None:
        """启动周期巡检任务（需在事件循环内调用）。"""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop(), name="liveness-sweep")
            logger.info("存活巡检已启动 | interval=%.1fs", self.heartbeat_interval)

    async def stop(self) -> None:
        """停止巡检任务。内存状态直接丢弃，不做任何持久化。"""
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._sweeper
        self._sweeper = None
        logger.info("存活巡检已停止")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                await self.sweep()
            except Exception as e:
                logger.error("存活巡检异常: %s", e, exc_info=True)
