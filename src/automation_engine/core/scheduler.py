"""延时调度器：恢复定时暂停已到期的执行"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, List, Optional, Set, Tuple

from ..exceptions import AutomationError, SchedulingError
from ..models.workflow import utcnow
from ..storage.repository import ExecutionRepository
from .engine import ExecutionEngine


logger = logging.getLogger(__name__)


class DelayScheduler:
    """
    轮询执行存储中到期的延时，交给有界的工作协程池处理

    多个调度器可以轮询同一个存储；引擎的版本检查保证
    每个执行只会被其中一个恢复。
    """

    def __init__(
        self,
        engine: ExecutionEngine,
        executions: ExecutionRepository,
        poll_interval: float = 30.0,
        concurrency: int = 4,
        batch_size: int = 100,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if concurrency <= 0:
            raise SchedulingError("concurrency must be positive")
        self.engine = engine
        self.executions = executions
        self.poll_interval = poll_interval
        self.concurrency = concurrency
        self.batch_size = batch_size
        self.clock = clock or engine.clock or utcnow
        self._queue: Optional["asyncio.Queue[Optional[Tuple[str, datetime]]]"] = None
        self._workers: List[asyncio.Task[None]] = []
        self._poller: Optional[asyncio.Task[None]] = None
        self._in_flight: Set[str] = set()
        self._stop_event = asyncio.Event()
        self._running = False
        self.resumed = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self, poll: bool = True) -> None:
        """启动工作协程；除非 ``poll`` 为 False，同时启动轮询循环"""
        if self._running:
            return
        self._running = True
        self._stop_event.clear()
        self._queue = asyncio.Queue()
        for _ in range(self.concurrency):
            self._workers.append(asyncio.create_task(self._worker_loop()))
        if poll:
            self._poller = asyncio.create_task(self._poll_loop())
        logger.info(
            f"Delay scheduler started (concurrency={self.concurrency}, "
            f"poll_interval={self.poll_interval}s)"
        )

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self._stop_event.set()
        if self._poller is not None:
            await self._poller
            self._poller = None
        for _ in self._workers:
            await self._queue.put(None)
        await asyncio.gather(*self._workers)
        self._workers.clear()
        logger.info("Delay scheduler stopped")

    async def __aenter__(self) -> "DelayScheduler":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.stop()

    async def poll(self, now: Optional[datetime] = None) -> int:
        """将所有尚未入队的到期执行入队，返回入队数量"""
        if not self._running:
            raise SchedulingError("Scheduler must be started before polling")
        now = now or self.clock()
        due = await self.executions.list_due_delays(now, limit=self.batch_size)
        enqueued = 0
        for execution in due:
            if execution.id in self._in_flight:
                continue
            self._in_flight.add(execution.id)
            await self._queue.put((execution.id, now))
            enqueued += 1
        if enqueued:
            logger.debug(f"Enqueued {enqueued} due executions")
        return enqueued

    async def wait_until_idle(self) -> None:
        if self._queue is not None:
            await self._queue.join()

    async def run_once(self, now: Optional[datetime] = None) -> int:
        """执行一轮轮询，并等待被恢复的执行处理完成"""
        started_here = not self._running
        if started_here:
            await self.start(poll=False)
        try:
            enqueued = await self.poll(now)
            await self.wait_until_idle()
            return enqueued
        finally:
            if started_here:
                await self.stop()

    async def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.poll()
            except Exception as e:
                logger.error(f"Delay scheduler poll failed: {e}", exc_info=True)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass

    async def _worker_loop(self) -> None:
        while True:
            item = await self._queue.get()
            if item is None:  # sentinel for shutdown
                self._queue.task_done()
                break
            execution_id, due_at = item
            try:
                await self._resume(execution_id, due_at)
            finally:
                self._in_flight.discard(execution_id)
                self._queue.task_done()

    async def _resume(self, execution_id: str, now: datetime) -> None:
        try:
            execution = await self.engine.resume_from_delay(execution_id, max(now, self.clock()))
            self.resumed += 1
            logger.info(f"Resumed execution {execution_id}: now {execution.status.value}")
        except AutomationError as e:
            # 通常是其他调度器或取消操作先到
            logger.info(f"Skipping execution {execution_id}: {e.message}")
        except Exception as e:
            logger.error(f"Failed to resume execution {execution_id}: {e}", exc_info=True)
