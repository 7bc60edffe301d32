"""
Ordered buffer of mutations that could not reach the durable store
"""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from enum import Enum

from ...models import OfflineQueueItem

logger = logging.getLogger(__name__)

QueueSink = Callable[[OfflineQueueItem], Awaitable[object]]


class QueueState(Enum):
    """Lifecycle of the offline queue"""

    EMPTY = "empty"
    HAS_PENDING = "has_pending"
    DRAINING = "draining"


class OfflineSyncQueue:
    """FIFO queue of pending store writes, drained when connectivity returns"""

    def __init__(self):
        self._items: deque[OfflineQueueItem] = deque()
        self._flush_lock = asyncio.Lock()
        self._draining = False
        self._unconfirmed: list[OfflineQueueItem] = []

    @property
    def pending_count(self) -> int:
        """Queued items plus items of a running flush not yet delivered"""
        return len(self._items) + len(self._unconfirmed)

    @property
    def is_empty(self) -> bool:
        return not self._items

    @property
    def is_draining(self) -> bool:
        return self._draining

    @property
    def state(self) -> QueueState:
        if self._draining:
            return QueueState.DRAINING
        if self._items:
            return QueueState.HAS_PENDING
        return QueueState.EMPTY

    def items(self) -> list[OfflineQueueItem]:
        """Snapshot of the queued items in delivery order"""
        return list(self._items)

    def pending_items(self) -> list[OfflineQueueItem]:
        """Items of a running flush not yet delivered, then the queued items"""
        return self._unconfirmed + list(self._items)

    def enqueue(self, item: OfflineQueueItem) -> None:
        """Append an item; duplicates for the same key are kept"""
        self._items.append(item)
        logger.debug(
            f"Queued {item.kind.value} item (key={item.key}), pending={len(self._items)}"
        )

    def discard(self, predicate: Callable[[OfflineQueueItem], bool]) -> int:
        """Remove every queued item matching the predicate"""
        kept = [item for item in self._items if not predicate(item)]
        removed = len(self._items) - len(kept)
        self._items = deque(kept)
        if removed:
            logger.info(f"Discarded {removed} queued items")
        return removed

    async def flush(self, sink: QueueSink) -> list[OfflineQueueItem]:
        """
        Deliver queued items to the sink in FIFO order

        Every item present when the flush starts is attempted once, except
        items sharing a key with an item that already failed in this pass:
        those stay queued behind it so later writes never land before earlier
        ones. Undelivered items return to the front of the queue in their
        original order, ahead of anything enqueued during the flush.

        Args:
            sink: Async callable delivering one item, raising on failure

        Returns:
            Items whose delivery failed in this pass
        """
        async with self._flush_lock:
            if not self._items:
                return []

            batch = list(self._items)
            self._items.clear()
            self._draining = True
            self._unconfirmed = list(batch)

            retained: list[OfflineQueueItem] = []
            failed: list[OfflineQueueItem] = []
            blocked_keys: set = set()
            delivered = 0
            position = 0

            logger.info(f"Flushing {len(batch)} queued items")

            try:
                for position, item in enumerate(batch):
                    if item.key is not None and item.key in blocked_keys:
                        retained.append(item)
                        continue

                    try:
                        await sink(item)
                    except asyncio.CancelledError:
                        raise
                    except Exception as e:
                        logger.warning(
                            f"Failed to deliver {item.kind.value} item (key={item.key}): {e}"
                        )
                        failed.append(item)
                        retained.append(item)
                        if item.key is not None:
                            blocked_keys.add(item.key)
                    else:
                        delivered += 1
                        self._unconfirmed = [
                            pending for pending in self._unconfirmed if pending is not item
                        ]
            except asyncio.CancelledError:
                # Unconfirmed items stay queued for the next flush
                retained.extend(batch[position:])
                logger.info(
                    f"Flush cancelled after {delivered} deliveries, "
                    f"{len(retained)} items kept"
                )
                raise
            finally:
                self._items.extendleft(reversed(retained))
                self._draining = False
                self._unconfirmed = []

            logger.info(
                f"Flush finished: delivered={delivered}, failed={len(failed)}, "
                f"pending={len(self._items)}"
            )
            return failed
