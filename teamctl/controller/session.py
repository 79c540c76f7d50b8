"""
The active-session slot.

At most one TeamController is active per server. Installing a new one shuts
down and awaits the previous occupant first. Operations borrow the active
controller through ``active()``, which holds the slot lock so a concurrent
re-init cannot tear the controller down mid-operation.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from teamctl.controller.team_controller import TeamController
from teamctl.core.errors import NoActiveSession

logger = logging.getLogger(__name__)


class SessionSlot:
    """Owned, optional 'active session' guarded by an asyncio lock."""

    def __init__(self):
        self._controller: Optional[TeamController] = None
        self._lock = asyncio.Lock()
        self.started_at = time.time()

    @property
    def is_active(self) -> bool:
        return self._controller is not None

    @property
    def team_name(self) -> str:
        return self._controller.team_name if self._controller else ""

    async def install(self, controller: TeamController) -> None:
        """Replace the active controller, shutting the old one down first."""
        async with self._lock:
            previous = self._controller
            self._controller = None
            if previous is not None and previous is not controller:
                logger.info(f"Replacing active session for team '{previous.team_name}'")
                await previous.shutdown_all()
            self._controller = controller

    async def clear(self) -> bool:
        """Shut down the active controller, if any. Returns whether one existed."""
        async with self._lock:
            previous = self._controller
            self._controller = None
            if previous is None:
                return False
            await previous.shutdown_all()
            return True

    @asynccontextmanager
    async def active(self) -> AsyncIterator[TeamController]:
        """
        Borrow the active controller for one operation.

        Raises:
            NoActiveSession: If no session is initialized.
        """
        async with self._lock:
            if self._controller is None:
                raise NoActiveSession()
            yield self._controller
