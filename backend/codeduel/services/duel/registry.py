import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_RATING = 1350


@dataclass
class Player:
    connection_id: str
    username: str
    user_id: str
    rating: int = DEFAULT_RATING
    current_room_id: Optional[str] = None

    def to_dict(self):
        return {
            'username': self.username,
            'userId': self.user_id,
            'rating': self.rating,
            'currentRoom': self.current_room_id,
        }


class ConnectionRegistry:
    """Maps live connections to lightweight player identities.

    ``unregister`` runs every cleanup hook with the removed player so queue
    entries and room seats never outlive their connection. ``on_change`` is
    called with the new online count after every register/unregister.
    """

    def __init__(self, default_rating: int = DEFAULT_RATING, on_change: Optional[Callable[[int], None]] = None):
        self.default_rating = default_rating
        self.on_change = on_change
        self._players: Dict[str, Player] = {}
        self._cleanup_hooks: List[Callable[[Player], None]] = []
        self._lock = threading.RLock()

    def add_cleanup_hook(self, hook: Callable[[Player], None]) -> None:
        self._cleanup_hooks.append(hook)

    def register(self, connection_id: str, username=None, user_id=None, rating=None) -> Player:
        username = username or f"Player_{connection_id[:5]}"
        user_id = str(user_id) if user_id else connection_id
        rating = _coerce_rating(rating, self.default_rating)
        with self._lock:
            player = self._players.get(connection_id)
            if player is None:
                player = Player(connection_id=connection_id, username=username, user_id=user_id, rating=rating)
                self._players[connection_id] = player
                logger.info(f"[register] sid={connection_id} user={user_id} name={username}")
            else:
                player.username = username
                player.user_id = user_id
                player.rating = rating
            count = len(self._players)
        self._notify(count)
        return player

    def unregister(self, connection_id: str) -> Optional[Player]:
        with self._lock:
            player = self._players.pop(connection_id, None)
            count = len(self._players)
        if player is None:
            return None
        logger.info(f"[unregister] sid={connection_id} user={player.user_id} room={player.current_room_id}")
        for hook in self._cleanup_hooks:
            hook(player)
        self._notify(count)
        return player

    def get(self, connection_id: str) -> Optional[Player]:
        with self._lock:
            return self._players.get(connection_id)

    def count(self) -> int:
        with self._lock:
            return len(self._players)

    def _notify(self, count: int) -> None:
        if self.on_change:
            self.on_change(count)


def _coerce_rating(value, default: int) -> int:
    if value is None or value == '':
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
