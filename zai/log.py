# -*- coding: utf-8 -*-

# Z.ai SDK Core
# Copyright (C) 2025 zai-sdk-core contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""
Logging switches for the SDK.

The package logs through loguru and is disabled on import, so an
application that never calls setup_logging() sees no SDK output.
"""

import sys
from typing import Any, Optional

from loguru import logger

from zai.config import LOG_LEVEL

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def setup_logging(level: Optional[str] = None, sink: Any = sys.stderr) -> int:
    """
    Enable SDK logging and add a sink that only receives SDK records.

    Args:
        level: Minimum level (default LOG_LEVEL from the environment)
        sink: Any loguru sink (stream, path, callable)

    Returns:
        Handler id, pass it to disable_logging() to remove the sink
    """
    logger.enable("zai")
    return logger.add(sink, level=level or LOG_LEVEL, format=LOG_FORMAT, filter="zai")


def disable_logging(handler_id: Optional[int] = None) -> None:
    """Silence the SDK again, removing the handler added by setup_logging()."""
    if handler_id is not None:
        logger.remove(handler_id)
    logger.disable("zai")
