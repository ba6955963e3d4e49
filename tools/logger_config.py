#!/usr/bin/env python3
"""
logger_config.py - Logging setup shared by the datalog tools

Modules log through ``logging.getLogger(__name__)``; entry points call
:func:`setup_logging` once. The level defaults to the
``DATALOG_LOG_LEVEL`` environment variable, then WARNING.
"""

import logging
import os
from typing import Optional, Union

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
LEVEL_ENV_VAR = 'DATALOG_LOG_LEVEL'

_HANDLER_MARK = '_datalog_handler'


def resolve_level(level: Union[int, str, None] = None) -> int:
    """Turn a level name, number or None (environment) into a logging level."""
    if level is None:
        level = os.environ.get(LEVEL_ENV_VAR, 'WARNING')
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def setup_logging(level: Union[int, str, None] = None,
                  log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the root logger with a console handler and optional file.

    Calling it again replaces the handlers it installed earlier.
    """
    root = logging.getLogger()
    root.setLevel(resolve_level(level))

    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    for handler in handlers:
        handler.setFormatter(formatter)
        setattr(handler, _HANDLER_MARK, True)
        root.addHandler(handler)

    return root
