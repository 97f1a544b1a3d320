"""Process logging setup shared by the HTTP and CLI entrypoints.

Log records go to a daily file `<log_dir>/app_YYYYMMDD.log` and to stderr.
Library modules only create `logging.getLogger(__name__)` loggers; handlers
are attached here once per process.
"""

from datetime import datetime
import logging
import os


LOG_FORMAT = "%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s"


def configure_logging(log_dir: str, level: int = logging.INFO, now: datetime | None = None) -> str:
    """Attach file and console handlers to the root logger.

    Returns the path of the log file. Calling it again in the same process
    replaces the previously attached handlers.
    """
    os.makedirs(log_dir, exist_ok=True)
    now = now or datetime.now()
    log_file = os.path.join(log_dir, f"app_{now.strftime('%Y%m%d')}.log")

    formatter = logging.Formatter(LOG_FORMAT)
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(formatter)
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_imagehub", False):
            root.removeHandler(handler)
            handler.close()
    for handler in (file_handler, console_handler):
        handler._imagehub = True
        root.addHandler(handler)
    root.setLevel(level)

    return log_file
