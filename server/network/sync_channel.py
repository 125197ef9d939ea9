"""
Sync channel: persists each new match snapshot and fans it out.

Snapshots are whole match states, never deltas. Delivery is latest-wins:
a subscriber is never handed a snapshot older than one it has already seen.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable

from server.config import settings
from server.persistence import MatchRepository


logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[str, dict[str, Any]], None | Awaitable[None]]


class _Subscription:
    """One subscriber and the newest version it has been given."""

    def __init__(self, callback: SnapshotCallback):
        self.callback = callback
        self.last_version = -1
        self.active = True

    async def deliver(self, match_id: str, snapshot: dict[str, Any]) -> bool:
        version = snapshot.get("version", 0)
        if not self.active or version <= self.last_version:
            return False

        self.last_version = version
        result = self.callback(match_id, snapshot)
        if inspect.isawaitable(result):
            await result
        return True


class SyncChannel:
    """
    Publish/subscribe for match snapshots.

    `publish` writes through the repository with compare-and-swap, so a
    publisher that lost a race gets StaleSnapshotError and nothing is
    delivered.
    """

    def __init__(
        self,
        repository: MatchRepository | None = None,
        keep_count: int | None = None
    ):
        self._repository = repository or MatchRepository()
        self._keep_count = keep_count if keep_count is not None else settings.SNAPSHOT_KEEP_COUNT

        # match_id -> subscriptions
        self._subscriptions: dict[str, list[_Subscription]] = {}

        # match_id -> newest published version
        self._latest: dict[str, int] = {}

    async def publish(
        self,
        match_id: str,
        snapshot: dict[str, Any],
        expected_version: int
    ) -> int:
        """
        Persist a snapshot and deliver it to every subscriber.

        Args:
            match_id: Match the snapshot belongs to
            snapshot: Full match state (Match.to_dict())
            expected_version: Version the publisher started from

        Returns:
            Number of subscribers the snapshot was delivered to

        Raises:
            StaleSnapshotError: if the stored match is no longer at expected_version
        """
        self._repository.save_snapshot(match_id, snapshot, expected_version)
        if self._keep_count > 0:
            self._repository.cleanup_old_snapshots(match_id, self._keep_count)

        version = snapshot["version"]
        self._latest[match_id] = max(version, self._latest.get(match_id, -1))

        delivered = 0
        for subscription in list(self._subscriptions.get(match_id, [])):
            try:
                if await subscription.deliver(match_id, snapshot):
                    delivered += 1
            except Exception as e:
                logger.error(f"Subscriber failed on match {match_id} v{version}: {e}")

        logger.debug(f"Published match {match_id} v{version} to {delivered} subscribers")

        return delivered

    def subscribe(self, match_id: str, callback: SnapshotCallback) -> Callable[[], None]:
        """
        Register for a match's snapshots.

        Returns:
            A function that cancels the subscription
        """
        subscription = _Subscription(callback)
        self._subscriptions.setdefault(match_id, []).append(subscription)

        def unsubscribe() -> None:
            subscription.active = False
            subscriptions = self._subscriptions.get(match_id, [])
            if subscription in subscriptions:
                subscriptions.remove(subscription)
            if not subscriptions:
                self._subscriptions.pop(match_id, None)

        return unsubscribe

    def subscriber_count(self, match_id: str) -> int:
        return len(self._subscriptions.get(match_id, []))

    def latest_version(self, match_id: str) -> int | None:
        """Newest version published through this channel, if any."""
        return self._latest.get(match_id)
