"""
Logging setup for the sync job.

Configures the root logger from ``config.logging``: a file handler on
``log_file`` plus a console handler when ``console_output`` is enabled.
Modules log through ``logging.getLogger(__name__)``.
"""

import logging
import sys
from typing import List

from config import LoggingConfig


def setup_logging(logging_config: LoggingConfig) -> logging.Logger:
    """
    Configure root logging handlers.

    Calling it again replaces the handlers installed by the previous call,
    so repeated runs in one process do not duplicate log lines.

    Args:
        logging_config: Logging section of the configuration

    Returns:
        The configured root logger
    """
    formatter = logging.Formatter(logging_config.log_format, datefmt=logging_config.date_format)

    handlers: List[logging.Handler] = []

    logging_config.log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(logging_config.log_file, encoding='utf-8')
    handlers.append(file_handler)

    if logging_config.console_output:
        handlers.append(logging.StreamHandler(sys.stderr))

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, '_cinesync', False):
            root.removeHandler(handler)
            handler.close()

    for handler in handlers:
        handler.setFormatter(formatter)
        handler._cinesync = True
        root.addHandler(handler)

    root.setLevel(logging_config.log_level)

    # urllib3 logs every connection at DEBUG
    logging.getLogger('urllib3').setLevel(logging.WARNING)

    return root
