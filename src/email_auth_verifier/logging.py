import logging
import logging.config
from typing import Any, Dict, Union, cast

import structlog

FORMATTERS = ("plain", "colored", "json")


def configure_logging(overrides: dict, *, debug: bool, formatter: str = "colored"):
    if formatter not in FORMATTERS:
        raise ValueError(f"unknown log formatter: {formatter}")
    log_level = (
        logging.DEBUG
        if debug
        else parse_log_level(overrides.get("root", {}).get("level", logging.INFO))
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.dev.set_exc_info,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    foreign_pre_chain = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.ExtraAdder(),
        structlog.processors.format_exc_info,
    ]
    console_processors = [
        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", utc=False),
    ]
    json_processors = [
        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.dict_tracebacks,
        structlog.processors.JSONRenderer(),
    ]
    formatter_processors = {
        "plain": console_processors + [structlog.dev.ConsoleRenderer(colors=False)],
        "colored": console_processors + [structlog.dev.ConsoleRenderer(colors=True)],
        "json": json_processors,
    }

    logging_config: Dict[str, Any] = {
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": formatter,
            },
        },
        "root": {},
    }
    logging_config.update(overrides)
    logging_config.update(
        {
            "version": 1,
            "incremental": False,
            # keep uvicorn's loggers alive when configured after import
            "disable_existing_loggers": False,
            "formatters": {
                name: {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "processors": processors,
                    "foreign_pre_chain": foreign_pre_chain,
                }
                for name, processors in formatter_processors.items()
            },
        }
    )
    root = cast(dict, logging_config["root"])
    if "handlers" not in root:
        root.update({"handlers": ["default"]})
    root.update({"level": log_level})
    logging.config.dictConfig(logging_config)


def parse_log_level(level: Union[str, int]) -> int:
    """Accept an int level or a case-insensitive level name such as "warning"."""
    if isinstance(level, int):
        return level
    parsed = logging.getLevelName(level.upper())
    if not isinstance(parsed, int):
        raise ValueError(f"invalid log level: {level}")
    return parsed
