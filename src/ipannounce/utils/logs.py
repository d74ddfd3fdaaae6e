"""Process-wide logging setup for ipannounce."""

import logging
import logging.handlers
import os
from typing import Optional

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'
SYSLOG_FORMAT = 'ipannounce[%(process)d]: %(levelname)s %(message)s'
SYSLOG_SOCKETS = ("/dev/log", "/var/run/syslog")


def _syslog_handler() -> Optional[logging.Handler]:
    """Create a handler on the first available system log socket."""
    for path in SYSLOG_SOCKETS:
        if not os.path.exists(path):
            continue
        try:
            handler = logging.handlers.SysLogHandler(
                address=path,
                facility=logging.handlers.SysLogHandler.LOG_DAEMON)
        except OSError as e:
            logger.debug(f"Could not open syslog socket {path}: {e}")
            continue
        handler.setFormatter(logging.Formatter(SYSLOG_FORMAT))
        return handler
    return None


def setup_logging(level: int = logging.INFO, use_syslog: bool = False) -> logging.Logger:
    """Configure the root logger once at process start.

    Args:
        level: Root log level
        use_syslog: Send records to the system log; if it is not available,
            records go to stderr instead

    Returns:
        The root logger
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = _syslog_handler() if use_syslog else None
    syslog_failed = use_syslog and handler is None
    if handler is None:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root.addHandler(handler)
    root.setLevel(level)

    if syslog_failed:
        logger.error("failed to setup syslog, logging to stderr")
    return root
