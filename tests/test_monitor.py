"""
Tests for the scheduler, liveness endpoint, configuration and CLI wiring.
"""
import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock, patch
from aiohttp.test_utils import TestClient, TestServer
from server_monitor.__main__ import build_parser, load_config
from server_monitor.core.clock import Clock
from server_monitor.core.config import MonitorConfig
from server_monitor.core.errors import ConfigurationError
from server_monitor.core.types import AttributeRefresh
from server_monitor.health import HEALTH_TEXT, create_health_app
from server_monitor.monitor import MonitorService, build_cycle
from server_monitor.store.memory_store import InMemoryEntityStore
from server_monitor.store.redis_store import RedisEntityStore

class SlowCycle:
    """Stands in for ReconciliationCycle; records concurrency."""
    def __init__(self, duration: float, error: Exception = None):
        self.duration = duration
        self.error = error
        self.started = 0
        self.running = 0
        self.max_running = 0
        self.source = MagicMock(close=AsyncMock())
        self.store = MagicMock(close=AsyncMock())
        self.journal = MagicMock()

    async def run_once(self):
        self.started += 1
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        try:
            await asyncio.sleep(self.duration)
            if self.error:
                raise self.error
            return f"report-{self.started}"
        finally:
            self.running -= 1

class TestScheduler(unittest.IsolatedAsyncioTestCase):
    async def run_for(self, service: MonitorService, seconds: float):
        task = asyncio.create_task(service.run())
        await asyncio.sleep(seconds)
        service.stop()
        await task
        if service._inflight is not None:
            await service._inflight

    async def test_first_cycle_runs_immediately(self):
        cycle = SlowCycle(duration=0)
        service = MonitorService(MonitorConfig(poll_interval=10), cycle=cycle)
        await self.run_for(service, 0.05)
        self.assertEqual(cycle.started, 1)

    async def test_fixed_interval(self):
        cycle = SlowCycle(duration=0)
        service = MonitorService(MonitorConfig(poll_interval=0.05), cycle=cycle)
        await self.run_for(service, 0.32)
        self.assertGreaterEqual(cycle.started, 4)
        self.assertEqual(service.skipped_ticks, 0)

    async def test_overlapping_tick_is_skipped(self):
        cycle = SlowCycle(duration=0.12)
        service = MonitorService(MonitorConfig(poll_interval=0.05), cycle=cycle)
        await self.run_for(service, 0.4)
        self.assertEqual(cycle.max_running, 1)
        self.assertGreater(service.skipped_ticks, 0)
        self.assertEqual(service.ticks, cycle.started + service.skipped_ticks)

    async def test_ticks_follow_monotonic_clock(self):
        cycle = SlowCycle(duration=0)
        service = MonitorService(MonitorConfig(poll_interval=0.05), cycle=cycle)
        with patch.object(Clock, "monotonic", wraps=Clock.monotonic) as monotonic:
            await self.run_for(service, 0.12)
        self.assertGreater(monotonic.call_count, 0)
        self.assertGreaterEqual(cycle.started, 2)

    async def test_last_report_is_kept(self):
        cycle = SlowCycle(duration=0)
        service = MonitorService(MonitorConfig(poll_interval=10), cycle=cycle)
        self.assertIsNone(service.last_report)
        await self.run_for(service, 0.05)
        self.assertEqual(service.last_report, "report-1")

    async def test_cycle_errors_do_not_stop_service(self):
        cycle = SlowCycle(duration=0, error=RuntimeError("boom"))
        service = MonitorService(MonitorConfig(poll_interval=0.05), cycle=cycle)
        await self.run_for(service, 0.2)
        self.assertGreaterEqual(cycle.started, 2)

    async def test_shutdown_closes_collaborators(self):
        cycle = SlowCycle(duration=0)
        service = MonitorService(MonitorConfig(poll_interval=10), cycle=cycle)
        await self.run_for(service, 0.02)
        await service.shutdown()
        cycle.source.close.assert_awaited_once()
        cycle.store.close.assert_awaited_once()
        cycle.journal.close.assert_called_once()

class TestHealthEndpoint(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.client = TestClient(TestServer(create_health_app()))
        await self.client.start_server()

    async def asyncTearDown(self):
        await self.client.close()

    async def test_any_path_any_method(self):
        for method, path in (("GET", "/"), ("GET", "/healthz"), ("POST", "/deep/path"), ("HEAD", "/")):
            resp = await self.client.request(method, path)
            self.assertEqual(resp.status, 200, (method, path))

    async def test_body(self):
        resp = await self.client.get("/")
        self.assertEqual(await resp.text(), HEALTH_TEXT)
        self.assertTrue(resp.headers["Content-Type"].startswith("text/plain"))

class TestConfig(unittest.TestCase):
    def test_defaults(self):
        config = MonitorConfig.from_env({})
        self.assertEqual(config.poll_interval, 45.0)
        self.assertEqual(config.missed_cycles_threshold, 10)
        self.assertEqual(config.deletion_delay, 86400.0)
        self.assertEqual(config.health_port, 10000)
        self.assertEqual(config.attribute_refresh, AttributeRefresh.ALWAYS)
        self.assertEqual(config.servers_url, "https://games.roblox.com/v1/games/14289997240/servers/0")

    def test_env_overrides(self):
        config = MonitorConfig.from_env({
            "MONITOR_POLL_INTERVAL": "30",
            "MONITOR_MISSED_CYCLES_THRESHOLD": "3",
            "MONITOR_DELETION_DELAY": "3600",
            "MONITOR_ATTRIBUTE_REFRESH": "ON_REAPPEARANCE",
            "MONITOR_JOURNAL_PATH": "/tmp/journal.jsonl",
            "PORT": "8080",
        })
        self.assertEqual(config.poll_interval, 30.0)
        self.assertEqual(config.missed_cycles_threshold, 3)
        self.assertEqual(config.deletion_delay, 3600.0)
        self.assertEqual(config.attribute_refresh, AttributeRefresh.ON_REAPPEARANCE)
        self.assertEqual(config.journal_path, "/tmp/journal.jsonl")
        self.assertEqual(config.health_port, 8080)

    def test_blank_values_keep_defaults(self):
        self.assertEqual(MonitorConfig.from_env({"MONITOR_POLL_INTERVAL": "  "}).poll_interval, 45.0)

    def test_rejects_non_positive(self):
        for name in ("MONITOR_POLL_INTERVAL", "MONITOR_MISSED_CYCLES_THRESHOLD", "MONITOR_DELETION_DELAY"):
            with self.assertRaises(ConfigurationError, msg=name):
                MonitorConfig.from_env({name: "0"})

    def test_rejects_garbage(self):
        with self.assertRaises(ConfigurationError):
            MonitorConfig.from_env({"MONITOR_MISSED_CYCLES_THRESHOLD": "ten"})
        with self.assertRaises(ConfigurationError):
            MonitorConfig.from_env({"MONITOR_ATTRIBUTE_REFRESH": "sometimes"})
        with self.assertRaises(ConfigurationError):
            MonitorConfig.from_env({"MONITOR_PLACE_ID": "abc"})

class TestCli(unittest.TestCase):
    def test_flags_override_config(self):
        args = build_parser().parse_args(["--threshold", "3", "--deletion-delay", "3600",
                                          "--attribute-refresh", "never", "--port", "9000"])
        config = load_config(args)
        self.assertEqual(config.missed_cycles_threshold, 3)
        self.assertEqual(config.deletion_delay, 3600)
        self.assertEqual(config.attribute_refresh, AttributeRefresh.NEVER)
        self.assertEqual(config.health_port, 9000)

    def test_memory_store_flag(self):
        self.assertTrue(build_parser().parse_args(["--memory-store", "--once"]).memory_store)
        self.assertFalse(build_parser().parse_args([]).memory_store)

    def test_invalid_flag_value(self):
        args = build_parser().parse_args(["--interval", "-1"])
        with self.assertRaises(ConfigurationError):
            load_config(args)

    def test_build_cycle_wiring(self):
        config = MonitorConfig(missed_cycles_threshold=4, deletion_delay=120, io_timeout=5)
        cycle = build_cycle(config, store=InMemoryEntityStore())
        self.assertEqual(cycle.policy.missed_cycles_threshold, 4)
        self.assertEqual(cycle.policy.deletion_delay, 120)
        self.assertEqual(cycle.io_timeout, 5)
        self.assertIsInstance(cycle.store, InMemoryEntityStore)
        self.assertFalse(cycle.journal.enabled)

    def test_default_store_is_redis(self):
        cycle = build_cycle(MonitorConfig())
        self.assertIsInstance(cycle.store, RedisEntityStore)

if __name__ == '__main__':
    unittest.main()
