import sys
from typing import Literal
from loguru import logger

# Every component logger is bound under this prefix
BASE_LOGGER_NAMESPACE = "toolmatch"

_MODULE_FORMAT = "<green>{time:HH:mm:ss}</green> <level>{level: <8}</level> | <cyan>{extra[module]}</cyan> | {message}"
_PLAIN_FORMAT = "<green>{time:HH:mm:ss}</green> <level>{level: <8}</level> | {message}"

_configured = False


def get_logger(name: str) -> "logger":
    """
    Returns a loguru logger bound with the given component name.

    Example: get_logger("FallbackChain") → logger with module="toolmatch.FallbackChain"
    """
    return logger.bind(module=f"{BASE_LOGGER_NAMESPACE}.{name}")


def _console_filter(with_module: bool):
    # Audit records have their own JSONL sink and never reach the console
    def accept(record) -> bool:
        extra = record["extra"]
        return ("module" in extra) == with_module and not extra.get("audit")

    return accept


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO",
    json_logs: bool = False,
) -> None:
    """
    Install the console sinks once per process. Later calls are no-ops.

    Args:
        level: Minimum level written to stderr.
        json_logs: Emit one serialized JSON record per line instead of
            the colored human format.
    """
    global _configured
    if _configured:
        return

    logger.remove()
    if json_logs:
        logger.add(sys.stderr, level=level, serialize=True, filter=lambda r: not r["extra"].get("audit"))
    else:
        logger.add(sys.stderr, format=_MODULE_FORMAT, level=level, colorize=True, filter=_console_filter(True))
        logger.add(sys.stderr, format=_PLAIN_FORMAT, level=level, colorize=True, filter=_console_filter(False))

    _configured = True
