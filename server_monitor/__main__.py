"""
Server Monitor: Main Entry Point

Command-line interface for the 24/7 server monitor.
Configuration comes from MONITOR_* environment variables; flags override them.
"""
import argparse
import asyncio
import dataclasses
import sys
from .core.config import MonitorConfig
from .core.errors import ConfigurationError
from .core.logger import configure_logging, get_logger
from .core.types import AttributeRefresh, CycleOutcome
from .monitor import MonitorService, build_cycle
from .store.memory_store import InMemoryEntityStore

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="server-monitor",
        description="Tracks the lifecycle of Roblox game servers"
    )
    parser.add_argument("--place-id", help="Roblox place whose servers are tracked")
    parser.add_argument("--interval", type=float, help="Seconds between cycle starts")
    parser.add_argument("--threshold", type=int, help="Missed cycles before a server is closed")
    parser.add_argument("--deletion-delay", type=float, help="Seconds a closed record is kept")
    parser.add_argument("--io-timeout", type=float, help="Timeout in seconds for each fetch, scan and commit")
    parser.add_argument("--max-pages", type=int, help="API pages read per snapshot")
    parser.add_argument(
        "--attribute-refresh",
        choices=[mode.value for mode in AttributeRefresh],
        help="When player counts are mirrored onto records"
    )
    parser.add_argument("--redis-url", help="Redis connection URL")
    parser.add_argument("--key-prefix", help="Redis key prefix")
    parser.add_argument("--port", type=int, help="Liveness endpoint port")
    parser.add_argument("--journal", help="Append lifecycle events to this JSONL file")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument(
        "--memory-store",
        action="store_true",
        help="Keep tracked records in process memory instead of Redis"
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single reconciliation cycle and exit"
    )
    return parser

_OVERRIDES = {
    "place_id": "place_id",
    "interval": "poll_interval",
    "threshold": "missed_cycles_threshold",
    "deletion_delay": "deletion_delay",
    "io_timeout": "io_timeout",
    "max_pages": "max_pages",
    "attribute_refresh": "attribute_refresh",
    "redis_url": "redis_url",
    "key_prefix": "key_prefix",
    "port": "health_port",
    "journal": "journal_path",
    "log_level": "log_level",
}

def load_config(args: argparse.Namespace) -> MonitorConfig:
    config = MonitorConfig.from_env()
    changes = {}
    for arg_name, field_name in _OVERRIDES.items():
        value = getattr(args, arg_name)
        if value is not None:
            changes[field_name] = AttributeRefresh(value) if arg_name == "attribute_refresh" else value
    return dataclasses.replace(config, **changes).validate()

async def run_once(config: MonitorConfig, memory_store: bool) -> int:
    cycle = build_cycle(config, store=InMemoryEntityStore() if memory_store else None)
    try:
        report = await cycle.run_once()
    finally:
        await cycle.source.close()
        await cycle.store.close()
        cycle.journal.close()
    print(report.model_dump_json(indent=2))
    return 0 if report.outcome in (CycleOutcome.COMMITTED, CycleOutcome.NOOP) else 1

def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    configure_logging(config.log_level)
    logger = get_logger("ServerMonitorMain")

    if args.once:
        return asyncio.run(run_once(config, args.memory_store))

    cycle = build_cycle(config, store=InMemoryEntityStore() if args.memory_store else None)
    logger.info("starting_monitor", memory_store=args.memory_store)
    try:
        asyncio.run(MonitorService(config, cycle=cycle).start())
    except KeyboardInterrupt:
        pass
    return 0

if __name__ == "__main__":
    sys.exit(main())
