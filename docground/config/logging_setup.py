import logging

_NOISY_LOGGERS = ("httpx", "httpcore", "openai", "urllib3")


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for the pipeline.

    Args:
        level: Log level name (e.g. "INFO", "DEBUG").
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric_level, format="%(asctime)s %(name)s: %(message)s")

    # HTTP client request logs only in debug mode
    quiet_level = logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)
