"""
Cancellable per-turn countdown.
"""
import asyncio
import inspect
import logging
import time
from typing import Awaitable, Callable, Optional, Union

from shared.constants import TURN_TIMEOUT

from .commands import EndTurn


logger = logging.getLogger(__name__)

ExpiryCallback = Callable[[EndTurn], Union[None, Awaitable[None]]]


class TurnTimer:
    """
    Emits an EndTurn command when a turn runs out of time.

    Starting a new turn cancels whatever timer was pending. The timer never
    touches match state itself; the callback decides what to do with the
    command.
    """

    def __init__(self, on_expire: ExpiryCallback, timeout: float = TURN_TIMEOUT):
        self._on_expire = on_expire
        self.timeout = timeout
        self._task: Optional[asyncio.Task] = None
        self._deadline: Optional[float] = None
        self.match_id: Optional[str] = None
        self.player_id: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def remaining(self) -> float:
        """Seconds left on the current turn, 0 if idle."""
        if not self.is_running or self._deadline is None:
            return 0.0
        return max(0.0, self._deadline - time.monotonic())

    def start(self, match_id: str, player_id: str, expected_version: Optional[int] = None) -> None:
        """
        Start counting down a turn.

        Must be called from inside a running event loop.
        """
        self.cancel()
        self.match_id = match_id
        self.player_id = player_id
        self._deadline = time.monotonic() + self.timeout
        command = EndTurn(actor_id=player_id, expected_version=expected_version)
        self._task = asyncio.get_running_loop().create_task(self._run(command))

    def cancel(self) -> None:
        """Cancel any pending countdown."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._deadline = None

    async def _run(self, command: EndTurn) -> None:
        try:
            await asyncio.sleep(self.timeout)
        except asyncio.CancelledError:
            logger.debug(f"Turn timer for {command.actor_id} cancelled")
            raise

        logger.info(f"Turn timer expired for {command.actor_id} in match {self.match_id}")
        # The callback may start the next turn's timer
        self._task = None
        self._deadline = None
        result = self._on_expire(command)
        if inspect.isawaitable(result):
            await result
