import logging
import random
import string
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .exceptions import RoomNotFound

logger = logging.getLogger(__name__)

MAX_PARTICIPANTS = 2
WAITING = 'waiting'
PLAYING = 'playing'


@dataclass
class ParticipantRef:
    connection_id: str
    user_id: str
    username: str
    rating: int
    ready: bool = False

    def to_dict(self):
        return {
            'username': self.username,
            'userId': self.user_id,
            'rating': self.rating,
            'ready': self.ready,
        }


@dataclass
class Submission:
    user_id: str
    code: str
    score: int
    passed: bool
    output: str
    submitted_at: float = field(default_factory=time.time)
    auto: bool = False

    def result_dict(self):
        # Code is never part of what the opponent sees.
        return {
            'score': self.score,
            'passed': self.passed,
            'output': self.output,
            'auto': self.auto,
        }


@dataclass
class Room:
    id: str
    join_code: str
    name: str
    creator_id: str
    creator_name: str
    challenge_id: str = 'random'
    time_limit: int = 300
    is_private: bool = False
    invited_user_id: Optional[str] = None
    participants: List[ParticipantRef] = field(default_factory=list)
    status: str = WAITING
    submissions: Dict[str, Submission] = field(default_factory=dict)
    code_snapshots: Dict[str, str] = field(default_factory=dict)
    active_challenge_id: Optional[str] = None
    deadline: Optional[float] = None
    play_cycle: int = 0
    closed: bool = False
    created_at: float = field(default_factory=time.time)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    @property
    def is_full(self) -> bool:
        return len(self.participants) >= MAX_PARTICIPANTS

    def participant(self, connection_id: str) -> Optional[ParticipantRef]:
        for p in self.participants:
            if p.connection_id == connection_id:
                return p
        return None

    def opponent_of(self, connection_id: str) -> Optional[ParticipantRef]:
        for p in self.participants:
            if p.connection_id != connection_id:
                return p
        return None

    def add_participant(self, participant: ParticipantRef) -> None:
        if self.is_full:
            raise ValueError(f"room {self.id} already has {MAX_PARTICIPANTS} participants")
        self.participants.append(participant)

    def remove_participant(self, connection_id: str) -> Optional[ParticipantRef]:
        p = self.participant(connection_id)
        if p is not None:
            self.participants.remove(p)
        return p

    def both_ready(self) -> bool:
        return len(self.participants) == MAX_PARTICIPANTS and all(p.ready for p in self.participants)

    def reset_to_waiting(self) -> None:
        """Drop all per-match state: back to the lobby with nobody ready."""
        self.status = WAITING
        self.submissions.clear()
        self.code_snapshots.clear()
        self.active_challenge_id = None
        self.deadline = None
        for p in self.participants:
            p.ready = False

    def summary(self, difficulty: str) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'creator': self.creator_name,
            'difficulty': difficulty,
            'timeLimit': self.time_limit,
            'players': len(self.participants),
            'maxPlayers': MAX_PARTICIPANTS,
            'status': self.status,
            'isPrivate': self.is_private,
        }


def generate_join_code(length=6):
    return ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))


class RoomStore:
    """Authoritative table of live rooms.

    The store lock guards the table only. Room state is guarded by each
    room's own lock, and callers never take the store lock while holding a
    room lock.
    """

    def __init__(self):
        self._rooms: Dict[str, Room] = {}
        self._lock = threading.RLock()

    def create(self, name, creator_id, creator_name, participants, challenge_id='random',
               time_limit=300, is_private=False, invited_user_id=None, prefix='room') -> Room:
        with self._lock:
            room_id = f"{prefix}_{uuid.uuid4().hex[:12]}"
            code = generate_join_code()
            while any(r.join_code == code for r in self._rooms.values()):
                logger.warning(f"[room-code-collision] regenerating code={code}")
                code = generate_join_code()
            room = Room(
                id=room_id,
                join_code=code,
                name=name,
                creator_id=creator_id,
                creator_name=creator_name,
                challenge_id=challenge_id,
                time_limit=time_limit,
                is_private=is_private,
                invited_user_id=invited_user_id,
            )
            for p in participants:
                room.add_participant(p)
            self._rooms[room_id] = room
        logger.info(f"[room-create] room={room_id} code={code} name={name!r} private={is_private}")
        return room

    def get(self, room_id) -> Room:
        room = self.lookup(room_id)
        if room is None:
            raise RoomNotFound(room_id)
        return room

    def lookup(self, room_id) -> Optional[Room]:
        with self._lock:
            room = self._rooms.get(room_id)
        if room is None or room.closed:
            return None
        return room

    def find_by_code(self, code) -> Room:
        code = (code or '').strip().upper()
        with self._lock:
            for room in self._rooms.values():
                if room.join_code == code and not room.closed:
                    return room
        raise RoomNotFound(code)

    def discard(self, room_id) -> None:
        with self._lock:
            removed = self._rooms.pop(room_id, None)
        if removed is not None:
            logger.info(f"[room-destroy] room={room_id}")

    def rooms(self) -> List[Room]:
        with self._lock:
            return list(self._rooms.values())

    def __len__(self):
        with self._lock:
            return len(self._rooms)

    def __contains__(self, room_id):
        with self._lock:
            room = self._rooms.get(room_id)
        return room is not None and not room.closed
