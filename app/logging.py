import logging
import os

_configured = False


def configure_logging() -> None:
    """Configure root logging once per process.

    Level comes from LOG_LEVEL (default INFO). Chatty HTTP client loggers
    are kept at WARNING so request lines do not drown sync output.
    """
    global _configured
    if _configured:
        return
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
