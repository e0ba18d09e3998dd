"""
Published detection state.

The publisher holds the one DetectionBatch the rendering side reads. Every
write goes through publish(), which swaps the reference in one step so a
reader never sees a partially updated batch.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from models.detection import DetectionBatch

Subscriber = Callable[[DetectionBatch], None]


class DetectionPublisher:
    """
    Single-writer holder for the latest detection batch.

    Args:
        drop_stale: When True, a batch whose frame_id is older than the
            newest frame_id already published is dropped. Batches without a
            frame_id (stream replies) are always applied, last arrival wins.
    """

    def __init__(self, drop_stale: bool = True):
        self.drop_stale = drop_stale
        self._latest: Optional[DetectionBatch] = None
        self._last_frame_id: Optional[int] = None
        self._closed = False
        self._subscribers: List[Subscriber] = []
        self.published_count = 0
        self.dropped_count = 0

    @property
    def latest(self) -> Optional[DetectionBatch]:
        return self._latest

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, callback: Subscriber) -> None:
        """Register a callback invoked with every accepted batch."""
        self._subscribers.append(callback)

    def publish(self, batch: DetectionBatch) -> bool:
        """
        Replace the published batch.

        Returns:
            True if the batch was accepted, False if it was dropped.
        """
        if self._closed:
            self.dropped_count += 1
            return False

        if batch.frame_id is not None:
            if (
                self.drop_stale
                and self._last_frame_id is not None
                and batch.frame_id < self._last_frame_id
            ):
                self.dropped_count += 1
                logging.debug(
                    f"Dropping stale batch: frame={batch.frame_id} newest={self._last_frame_id}"
                )
                return False
            if self._last_frame_id is None or batch.frame_id > self._last_frame_id:
                self._last_frame_id = batch.frame_id

        self._latest = batch
        self.published_count += 1

        for callback in self._subscribers:
            try:
                callback(batch)
            except Exception as e:
                logging.warning(f"Detection subscriber error: {e}")
        return True

    def clear(self) -> None:
        """Forget the published batch (renderer sees no detections)."""
        self._latest = None
        self._last_frame_id = None

    def close(self) -> None:
        """Clear and refuse all further batches."""
        self.clear()
        self._closed = True
