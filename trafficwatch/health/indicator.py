"""Transition notification capability.

The presentation layer supplies an object with show() and hide(); the
monitor drives it from the transitioning flag.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = "Cluster transition in progress... please wait."


class TransitionIndicator(Protocol):
    """Notification shown while a cluster transition is in progress."""

    def show(self) -> None: ...

    def hide(self) -> None: ...


class LogIndicator:
    """Indicator that reports transitions through the log.

    Used when no presentation layer is attached, e.g. headless polling.
    """

    def __init__(self, message: str = DEFAULT_MESSAGE):
        self.message = message
        self.visible = False
        self.shown_at: Optional[datetime] = None

    def show(self) -> None:
        # A second show() replaces the existing notification
        self.visible = True
        self.shown_at = datetime.now(timezone.utc)
        logger.warning(f"[Notification] {self.message}")

    def hide(self) -> None:
        if not self.visible:
            return
        duration = (datetime.now(timezone.utc) - self.shown_at).total_seconds()
        self.visible = False
        self.shown_at = None
        logger.info(f"[Notification] Cluster transition completed after {duration:.1f}s")
