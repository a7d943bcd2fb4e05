import structlog
import logging

def configure_logging(log_level: str = "INFO"):
    """
    Configures structlog to output JSON logs to stdout.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer()
        ],
        logger_factory=structlog.PrintLoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(log_level.upper())),
        cache_logger_on_first_use=True,
    )

def get_logger(name: str):
    return structlog.get_logger(name)

def bind_cycle(cycle_id: int):
    """
    Tags every log line emitted during one reconciliation cycle.
    """
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(cycle=cycle_id)
