import logging
import sys

# Third-party loggers that are noisy at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "anthropic", "alembic", "uvicorn.access")


def setup_logging(level: str = "INFO") -> None:
    """
    Configure root logging with a single stderr handler.
    Call once at startup, before the first log call.
    """
    root = logging.getLogger()
    root.setLevel(level)

    # Remove pre-existing handlers to avoid duplicate lines on reload
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
