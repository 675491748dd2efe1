import logging
import threading
import time
from dataclasses import dataclass, field
from typing import List, Optional

from .challenges import RANDOM_CHALLENGE
from .exceptions import AlreadyQueued
from .rooms import ParticipantRef, Room, RoomStore

logger = logging.getLogger(__name__)

QUICK_MATCH_NAME = 'Quick Match'


@dataclass
class MatchmakingEntry:
    connection_id: str
    user_id: str
    username: str
    rating: int
    joined_at: float = field(default_factory=time.time)


class MatchmakingQueue:
    """FIFO waiting list. The two oldest entries are always the next pair;
    rating plays no part in pairing."""

    def __init__(self):
        self._entries: List[MatchmakingEntry] = []
        self._lock = threading.RLock()

    def enqueue(self, entry: MatchmakingEntry) -> int:
        with self._lock:
            if any(e.user_id == entry.user_id for e in self._entries):
                raise AlreadyQueued()
            self._entries.append(entry)
            position = len(self._entries)
        logger.info(f"[queue-join] user={entry.user_id} position={position}")
        return position

    def cancel(self, connection_id: str) -> Optional[MatchmakingEntry]:
        with self._lock:
            for i, e in enumerate(self._entries):
                if e.connection_id == connection_id:
                    logger.info(f"[queue-leave] user={e.user_id}")
                    return self._entries.pop(i)
        return None

    def try_pair(self, store: RoomStore, time_limit: int = 300) -> Optional[Room]:
        """Pair the two oldest entries into a fresh public room.

        Returns the created room, or None while fewer than two are queued.
        """
        with self._lock:
            if len(self._entries) < 2:
                return None
            first = self._entries.pop(0)
            second = self._entries.pop(0)
        logger.info(f"[queue-pair] users={first.user_id},{second.user_id}")
        return store.create(
            name=QUICK_MATCH_NAME,
            creator_id='system',
            creator_name='System',
            participants=[_participant(first), _participant(second)],
            challenge_id=RANDOM_CHALLENGE,
            time_limit=time_limit,
            is_private=False,
            prefix='quick_match',
        )

    def position(self, connection_id: str) -> Optional[int]:
        with self._lock:
            for i, e in enumerate(self._entries):
                if e.connection_id == connection_id:
                    return i + 1
        return None

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def __contains__(self, connection_id):
        return self.position(connection_id) is not None


def _participant(entry: MatchmakingEntry) -> ParticipantRef:
    return ParticipantRef(
        connection_id=entry.connection_id,
        user_id=entry.user_id,
        username=entry.username,
        rating=entry.rating,
        ready=False,
    )
