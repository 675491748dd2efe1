"""Error taxonomy for the duel coordinator.

Every failure raised by the coordinator is scoped to one connection or one
room. Socket handlers turn a ``DuelError`` into an ``error`` event for the
sender and keep the connection open.
"""


class DuelError(Exception):
    """Base class for all coordinator errors."""
    reason = 'error'

    def __init__(self, message=None):
        super().__init__(message or self.__doc__.strip())
        self.message = message or self.__doc__.strip()

    def to_dict(self):
        return {'reason': self.reason, 'message': self.message}


# ============ Protocol errors ============

class ProtocolError(DuelError):
    """Message is malformed or unexpected in the current state."""
    reason = 'protocol_error'


class NotRegistered(ProtocolError):
    """Register before joining rooms or matchmaking."""
    reason = 'not_registered'


class InvalidOptions(ProtocolError):
    """Invalid room options."""
    reason = 'invalid_options'


class NotInRoom(ProtocolError):
    """You are not a participant of this room."""
    reason = 'not_in_room'


class NotInChallenge(ProtocolError):
    """No challenge is in progress in this room."""
    reason = 'not_in_challenge'


class AlreadyPlaying(ProtocolError):
    """A challenge is already in progress in this room."""
    reason = 'already_playing'


class AlreadyInRoom(ProtocolError):
    """You already hold a seat in this room from another connection."""
    reason = 'already_in_room'


# ============ Lookup errors ============

class NotFoundError(DuelError):
    """Not found."""
    reason = 'not_found'


class RoomNotFound(NotFoundError):
    """Room not found."""
    reason = 'room_not_found'

    def __init__(self, room_id):
        self.room_id = room_id
        super().__init__(f"Room {room_id} not found")


# ============ Capacity errors ============

class CapacityError(DuelError):
    """Capacity exceeded."""
    reason = 'capacity'


class RoomFull(CapacityError):
    """Room is full."""
    reason = 'room_full'


class AlreadyQueued(CapacityError):
    """Already searching for an opponent."""
    reason = 'already_queued'


# ============ Access errors ============

class PrivateRoomDenied(DuelError):
    """Private room - invitation required."""
    reason = 'private_room'


# ============ Evaluation errors ============

class EvaluationError(DuelError):
    """Submission could not be evaluated."""
    reason = 'evaluation_error'
