# voice_relay/core/logging.py
import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """
    Root logger setup for the whole process.

    Feature modules log through named loggers ("relay", "evaluate", ...);
    uvicorn's loggers are pointed at the same level so access/error lines
    and our lines interleave with one format.
    """
    lvl = logging.getLevelName((level or "INFO").upper())
    if not isinstance(lvl, int):
        lvl = logging.INFO

    root = logging.getLogger()
    root.setLevel(lvl)
    if not root.handlers:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(stream_handler)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(lvl)
    # httpx logs every request line at INFO
    logging.getLogger("httpx").setLevel(max(lvl, logging.WARNING))
