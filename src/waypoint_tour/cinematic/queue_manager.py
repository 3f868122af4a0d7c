"""
Queue management for map camera movements.

Each CameraTransitionController owns one QueueManager, so concurrent map
sessions never share queue state. The queue is strictly FIFO: requests are
drained one at a time after the active sequence finishes.
"""

import logging
from collections import deque
from typing import Deque, Dict, List, Optional

from .movement_state import MovementKind, MovementRequest


logger = logging.getLogger(__name__)


class QueueManager:
    """FIFO of camera requests waiting behind the active sequence"""

    def __init__(self):
        self.movement_queue: Deque[MovementRequest] = deque()
        self.total_enqueued = 0
        self.total_cleared = 0

    def __len__(self) -> int:
        return len(self.movement_queue)

    def add_movement(self, request: MovementRequest) -> int:
        """Append a request; returns its 1-based queue position"""
        self.movement_queue.append(request)
        self.total_enqueued += 1
        logger.debug(f"Queued movement {request.movement_id} ({request.kind.value}) at position {len(self.movement_queue)}")
        return len(self.movement_queue)

    def get_next_movement(self) -> Optional[MovementRequest]:
        """Pop the queue head, or None when empty"""
        if self.movement_queue:
            return self.movement_queue.popleft()
        return None

    def has_pending(self, kind: MovementKind) -> bool:
        return any(request.kind is kind for request in self.movement_queue)

    def clear_queue(self, kinds: Optional[List[MovementKind]] = None) -> int:
        """Drop queued requests (optionally only those of ``kinds``); returns the count removed"""
        if kinds is None:
            removed = len(self.movement_queue)
            self.movement_queue.clear()
        else:
            kept = deque(request for request in self.movement_queue if request.kind not in kinds)
            removed = len(self.movement_queue) - len(kept)
            self.movement_queue = kept

        self.total_cleared += removed
        if removed:
            logger.info(f"Cleared {removed} queued movements")
        return removed

    def get_queue_status(self) -> Dict:
        """Summary of queued requests for status reporting"""
        return {
            'queued_count': len(self.movement_queue),
            'queued_movements': [
                {
                    'movement_id': request.movement_id,
                    'kind': request.kind.value,
                    'target': request.target.as_tuple(),
                    'zoom': request.zoom,
                    'position': position,
                }
                for position, request in enumerate(self.movement_queue, start=1)
            ],
            'total_enqueued': self.total_enqueued,
            'total_cleared': self.total_cleared,
        }
