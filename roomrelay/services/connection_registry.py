"""
roomrelay.services.connection_registry
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

在线连接登记表 + 存活巡检。

每个连接带一个存活标记：登记时为 ``True``，收到心跳应答（或任意入站帧）时置回
``True``。巡检时标记为 ``False`` 的连接会被强制断开，其余连接清除标记并发送
心跳探测。这样可以发现传输层尚未报告关闭的半开连接。
"""
from __future__ import annotations

from collections.abc import Callable

from roomrelay.core.logging import get_logger
from roomrelay.services.session import ConnId

logger = get_logger(__name__)


class ConnectionRegistry:
    """连接句柄 → 存活标记。"""

    def __init__(self) -> None:
        self._alive: dict[ConnId, bool] = {}

    def register(self, conn: ConnId) -> None:
        self._alive[conn] = True

    def unregister(self, conn: ConnId) -> None:
        self._alive.pop(conn, None)

    def mark_alive(self, conn: ConnId) -> None:
        if conn in self._alive:
            self._alive[conn] = True

    def is_alive(self, conn: ConnId) -> bool:
        return self._alive.get(conn, False)

    def is_registered(self, conn: ConnId) -> bool:
        return conn in self._alive

    def handles(self) -> list[ConnId]:
        return list(self._alive)

    def __len__(self) -> int:
        return len(self._alive)

    def sweep(
        self,
        probe: Callable[[ConnId], None],
        terminate: Callable[[ConnId], None],
    ) -> list[ConnId]:
        """执行一轮存活巡检。

        Args:
            probe: 向存活连接发送心跳探测。
            terminate: 强制断开失联连接并完成清理（应同步地将其注销）。

        Returns:
            本轮被断开的连接句柄。
        """
        terminated: list[ConnId] = []
        for conn in list(self._alive):
            if conn not in self._alive:
                continue
            try:
                if not self._alive[conn]:
                    terminated.append(conn)
                    terminate(conn)
                    continue
                self._alive[conn] = False
                probe(conn)
            except Exception as e:
                # 单个连接出错不影响其余连接的巡检
                logger.warning("存活巡检处理连接失败 | conn=%s | %s", conn, e, exc_info=True)
        return terminated
