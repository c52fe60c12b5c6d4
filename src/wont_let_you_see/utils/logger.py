# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_aegis

"""
Logging setup.

The rest of the package imports `logger` from here. Only tokens, counts,
session ids and pattern names are ever logged, never original values.
"""

import os
import sys
from typing import Any, Optional

from loguru import logger

__all__ = ["logger", "add_sink"]

LOG_LEVEL_ENV = "WONT_LET_YOU_SEE_LOG_LEVEL"
LOG_FORMAT = "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | {name}:{function} - {message}"


def add_sink(sink: Any, level: Optional[str] = None) -> int:
    """
    Attaches a sink with the package format.

    Tracebacks are printed without variable values, since frame locals hold
    the text being masked.
    """
    return logger.add(
        sink,
        level=(level or os.environ.get(LOG_LEVEL_ENV, "WARNING")).upper(),
        format=LOG_FORMAT,
        backtrace=False,
        diagnose=False,
    )


# Hosts embed this package, so stay quiet unless asked otherwise.
logger.remove()
add_sink(sys.stderr)
