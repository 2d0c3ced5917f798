"""User-visible notification sink.

The view layer passes a callable taking ``(level, text)``; level is
``"error"`` or ``"success"``. Without one, notifications go to the log.
"""

from __future__ import annotations

import logging
from typing import Callable

logger = logging.getLogger(__name__)

Notifier = Callable[[str, str], None]


def log_notifier(level: str, text: str) -> None:
    if level == "error":
        logger.error("Notification: %s", text)
    else:
        logger.info("Notification: %s", text)
