"""Inbound protocol messages.

Each Socket.IO event name maps to one message class. ``parse_message`` turns
a raw payload into an instance so the coordinator dispatches on a single,
validated type instead of raw dicts.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .exceptions import ProtocolError


@dataclass(frozen=True)
class Profile:
    """Identity fields a client may attach to room and matchmaking messages."""
    username: Optional[str] = None
    user_id: Optional[str] = None
    rating: Optional[int] = None

    @property
    def present(self) -> bool:
        return bool(self.username or self.user_id)

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> 'Profile':
        user_id = data.get('userId')
        return cls(
            username=_opt_str(data, 'username'),
            user_id=str(user_id) if user_id not in (None, '') else None,
            rating=_opt_int(data, 'rating'),
        )


@dataclass(frozen=True)
class Register:
    profile: Profile


@dataclass(frozen=True)
class CreateRoom:
    name: str
    is_private: bool = False
    challenge_id: Optional[str] = None
    time_limit: Optional[int] = None
    max_players: Optional[int] = None
    invite_user_id: Optional[str] = None
    profile: Profile = Profile()


@dataclass(frozen=True)
class JoinRoom:
    room_id: Optional[str] = None
    code: Optional[str] = None
    profile: Profile = Profile()


@dataclass(frozen=True)
class LeaveRoom:
    room_id: str


@dataclass(frozen=True)
class PlayerReady:
    room_id: str
    is_ready: bool


@dataclass(frozen=True)
class CodeUpdate:
    room_id: str
    code: str


@dataclass(frozen=True)
class SubmitSolution:
    room_id: str
    code: str


@dataclass(frozen=True)
class FindQuickMatch:
    profile: Profile = Profile()


@dataclass(frozen=True)
class CancelMatchmaking:
    pass


@dataclass(frozen=True)
class GetRooms:
    pass


@dataclass(frozen=True)
class RequestRematch:
    room_id: str


def _parse_register(data):
    return Register(profile=Profile.from_payload(data))


def _parse_create_room(data):
    name = _opt_str(data, 'name') or _opt_str(data, 'roomName')
    profile = Profile.from_payload(data)
    if not name:
        name = f"{profile.username}'s room" if profile.username else 'Code Duel'
    challenge_id = data.get('challengeId')
    invite = data.get('inviteUserId')
    return CreateRoom(
        name=name,
        is_private=bool(data.get('isPrivate', False)),
        challenge_id=str(challenge_id) if challenge_id not in (None, '') else None,
        time_limit=_opt_int(data, 'timeLimit'),
        max_players=_opt_int(data, 'maxPlayers'),
        invite_user_id=str(invite) if invite not in (None, '') else None,
        profile=profile,
    )


def _parse_join_room(data):
    room_id = _opt_str(data, 'roomId')
    code = _opt_str(data, 'code') or _opt_str(data, 'roomCode')
    if not room_id and not code:
        raise ProtocolError('roomId or code is required')
    return JoinRoom(room_id=room_id, code=code, profile=Profile.from_payload(data))


def _parse_leave_room(data):
    return LeaveRoom(room_id=_require_str(data, 'roomId'))


def _parse_player_ready(data):
    return PlayerReady(room_id=_require_str(data, 'roomId'), is_ready=bool(data.get('isReady', True)))


def _parse_code_update(data):
    return CodeUpdate(room_id=_require_str(data, 'roomId'), code=_code(data))


def _parse_submit_solution(data):
    return SubmitSolution(room_id=_require_str(data, 'roomId'), code=_code(data))


def _parse_find_quick_match(data):
    return FindQuickMatch(profile=Profile.from_payload(data))


def _parse_request_rematch(data):
    return RequestRematch(room_id=_require_str(data, 'roomId'))


PARSERS = {
    'register': _parse_register,
    'create_room': _parse_create_room,
    'join_room': _parse_join_room,
    'leave_room': _parse_leave_room,
    'player_ready': _parse_player_ready,
    'code_update': _parse_code_update,
    'submit_solution': _parse_submit_solution,
    'find_quick_match': _parse_find_quick_match,
    'cancel_matchmaking': lambda data: CancelMatchmaking(),
    'get_rooms': lambda data: GetRooms(),
    'request_rematch': _parse_request_rematch,
}


def parse_message(event: str, data) -> Any:
    parser = PARSERS.get(event)
    if parser is None:
        raise ProtocolError(f"Unknown message {event!r}")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ProtocolError(f"{event} payload must be an object")
    return parser(data)


def _opt_str(data, key) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _require_str(data, key) -> str:
    value = _opt_str(data, key)
    if not value:
        raise ProtocolError(f"{key} is required")
    return value


def _opt_int(data, key) -> Optional[int]:
    value = data.get(key)
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise ProtocolError(f"{key} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ProtocolError(f"{key} must be an integer")


def _code(data) -> str:
    code = data.get('code', '')
    if code is None:
        return ''
    if not isinstance(code, str):
        raise ProtocolError('code must be a string')
    return code
