import asyncio
import signal
from typing import Optional
from aiohttp import web
from .core.clock import Clock
from .core.config import MonitorConfig
from .core.journal import LifecycleJournal
from .core.logger import get_logger
from .core.types import CycleReport
from .health import start_health_server
from .reconciler.cycle import ReconciliationCycle
from .reconciler.engine import ReconciliationPolicy
from .sources.roblox_source import RobloxServerSource
from .sources.snapshot_source import SnapshotSource
from .store.entity_store import EntityStore
from .store.redis_store import RedisEntityStore

logger = get_logger("MonitorService")

def build_cycle(
    config: MonitorConfig,
    store: Optional[EntityStore] = None,
    source: Optional[SnapshotSource] = None,
) -> ReconciliationCycle:
    """
    Wires the production collaborators described by `config`.
    """
    policy = ReconciliationPolicy(
        missed_cycles_threshold=config.missed_cycles_threshold,
        deletion_delay=config.deletion_delay,
        attribute_refresh=config.attribute_refresh,
    )
    return ReconciliationCycle(
        source=source or RobloxServerSource(config),
        store=store or RedisEntityStore(config.redis_url, config.key_prefix),
        policy=policy,
        io_timeout=config.io_timeout,
        journal=LifecycleJournal(config.journal_path),
    )

class MonitorService:
    """
    Runs reconciliation cycles on a fixed interval and serves the liveness probe.
    Ticks are anchored to the start instant, not to cycle completion.
    A tick that finds the previous cycle still running is skipped.
    """
    def __init__(self, config: MonitorConfig, cycle: Optional[ReconciliationCycle] = None):
        self.config = config
        self.cycle = cycle or build_cycle(config)
        self.interval = config.poll_interval
        self.ticks = 0
        self.skipped_ticks = 0
        self.last_report: Optional[CycleReport] = None
        self._stopping = asyncio.Event()
        self._inflight: Optional[asyncio.Task] = None
        self._health: Optional[web.AppRunner] = None

    async def start(self):
        logger.info("system_startup",
                    place_id=self.config.place_id,
                    poll_interval=self.interval,
                    missed_cycles_threshold=self.config.missed_cycles_threshold,
                    deletion_delay=self.config.deletion_delay)

        self._health = await start_health_server(self.config.health_port)

        # Signal Handling
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self.stop, sig)

        try:
            await self.run()
        except asyncio.CancelledError:
            logger.info("tasks_cancelled")
        finally:
            await self.shutdown()

    async def run(self):
        """
        Tick loop. First cycle starts immediately.
        """
        next_tick = Clock.monotonic()
        logger.info("scheduler_started", interval=self.interval)

        while not self._stopping.is_set():
            self._tick()

            next_tick += self.interval
            now = Clock.monotonic()
            if next_tick <= now:
                # Event loop stalled past whole intervals; realign instead of bursting
                behind = int((now - next_tick) // self.interval) + 1
                logger.warning("scheduler_behind", ticks_dropped=behind)
                next_tick += behind * self.interval

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=next_tick - Clock.monotonic())
            except asyncio.TimeoutError:
                pass

        logger.info("scheduler_stopped", ticks=self.ticks, skipped=self.skipped_ticks)

    def _tick(self):
        self.ticks += 1
        if self._inflight is not None and not self._inflight.done():
            self.skipped_ticks += 1
            logger.warning("cycle_overlap_skipped", tick=self.ticks)
            return
        self._inflight = asyncio.create_task(self._run_cycle())

    async def _run_cycle(self):
        try:
            self.last_report = await self.cycle.run_once()
        except Exception as e:
            logger.exception("cycle_unexpected_error", error=str(e))

    def stop(self, sig: Optional[signal.Signals] = None):
        if not self._stopping.is_set():
            logger.info("shutdown_signal_received", signal=sig.name if sig is not None else None)
        self._stopping.set()

    async def shutdown(self):
        self.stop()
        if self._inflight is not None and not self._inflight.done():
            logger.info("waiting_for_inflight_cycle")
            try:
                await asyncio.wait_for(asyncio.shield(self._inflight), timeout=self.config.io_timeout * 2)
            except asyncio.TimeoutError:
                self._inflight.cancel()
                logger.warning("inflight_cycle_cancelled")

        await self.cycle.source.close()
        await self.cycle.store.close()
        self.cycle.journal.close()

        if self._health is not None:
            await self._health.cleanup()
            self._health = None
        logger.info("shutdown_complete")
