"""Session coordinator: the state machine behind every 1v1 room.

A room is ``waiting`` (0-2 participants) or ``playing`` (2 participants, a
challenge and a running countdown). Every inbound message is applied under
the lock of the room it concerns; room events are emitted while that lock is
held so each room's event stream leaves in transition order. Evaluation runs
outside the lock and its result is dropped if the play cycle it belongs to
has ended in the meantime.
"""
import time
from typing import Optional

from flask import current_app

from .broadcast import BroadcastGateway
from .challenges import RANDOM_CHALLENGE, ChallengeCatalog
from .evaluation import EvaluationResult, GuardedEvaluator
from .exceptions import (
    AlreadyInRoom,
    AlreadyPlaying,
    InvalidOptions,
    NotInChallenge,
    NotInRoom,
    NotRegistered,
    PrivateRoomDenied,
    ProtocolError,
    RoomFull,
    RoomNotFound,
)
from .matchmaking import MatchmakingEntry, MatchmakingQueue
from .messages import (
    CancelMatchmaking,
    CodeUpdate,
    CreateRoom,
    FindQuickMatch,
    GetRooms,
    JoinRoom,
    LeaveRoom,
    PlayerReady,
    Profile,
    Register,
    RequestRematch,
    SubmitSolution,
)
from .registry import DEFAULT_RATING, ConnectionRegistry, Player
from .rooms import MAX_PARTICIPANTS, PLAYING, ParticipantRef, Room, RoomStore, Submission
from .scoring import MatchResult, MatchSide, score_match


class SessionCoordinator:

    def __init__(self, gateway: BroadcastGateway, catalog: ChallengeCatalog, evaluator: GuardedEvaluator,
                 scheduler=None, default_rating: int = DEFAULT_RATING, default_time_limit: int = 300,
                 max_time_limit: int = 3600, clock=time.time):
        self.gateway = gateway
        self.catalog = catalog
        self.evaluator = evaluator
        self.scheduler = scheduler
        self.default_time_limit = default_time_limit
        self.max_time_limit = max_time_limit
        self.clock = clock
        self.registry = ConnectionRegistry(default_rating=default_rating, on_change=self._publish_online_count)
        self.registry.add_cleanup_hook(self._release_connection)
        self.queue = MatchmakingQueue()
        self.store = RoomStore()
        self._handlers = {
            Register: self._on_register,
            CreateRoom: self._on_create_room,
            JoinRoom: self._on_join_room,
            LeaveRoom: self._on_leave_room,
            PlayerReady: self._on_player_ready,
            CodeUpdate: self._on_code_update,
            SubmitSolution: self._on_submit_solution,
            FindQuickMatch: self._on_find_quick_match,
            CancelMatchmaking: self._on_cancel_matchmaking,
            GetRooms: self._on_get_rooms,
            RequestRematch: self._on_request_rematch,
        }

    # ---- Dispatch ----

    def handle(self, connection_id: str, message):
        handler = self._handlers.get(type(message))
        if handler is None:
            raise ProtocolError(f"Unsupported message {type(message).__name__}")
        return handler(connection_id, message)

    def _on_register(self, sid, msg: Register):
        return self.register(sid, msg.profile)

    def _on_create_room(self, sid, msg: CreateRoom):
        return self.create_room(sid, msg)

    def _on_join_room(self, sid, msg: JoinRoom):
        return self.join_room(sid, msg)

    def _on_leave_room(self, sid, msg: LeaveRoom):
        return self.leave_room(sid, msg.room_id)

    def _on_player_ready(self, sid, msg: PlayerReady):
        return self.set_ready(sid, msg.room_id, msg.is_ready)

    def _on_code_update(self, sid, msg: CodeUpdate):
        return self.code_update(sid, msg.room_id, msg.code)

    def _on_submit_solution(self, sid, msg: SubmitSolution):
        return self.submit_solution(sid, msg.room_id, msg.code)

    def _on_find_quick_match(self, sid, msg: FindQuickMatch):
        return self.find_quick_match(sid, msg.profile)

    def _on_cancel_matchmaking(self, sid, msg: CancelMatchmaking):
        return self.cancel_matchmaking(sid)

    def _on_get_rooms(self, sid, msg: GetRooms):
        rooms = self.list_rooms()
        self.gateway.to_connection(sid, 'room_list', rooms)
        return rooms

    def _on_request_rematch(self, sid, msg: RequestRematch):
        return self.request_rematch(sid, msg.room_id)

    # ---- Connections ----

    def register(self, sid: str, profile: Profile = Profile()) -> Player:
        player = self._register(sid, profile)
        self.gateway.to_connection(sid, 'system_message', {'message': f"Welcome, {player.username}!"})
        return player

    def disconnect(self, sid: str) -> Optional[Player]:
        """Drop the connection; its queue entry and room seat go with it."""
        return self.registry.unregister(sid)

    def _register(self, sid: str, profile: Profile) -> Player:
        existing = self.registry.get(sid)
        if existing is not None:
            return self.registry.register(
                sid,
                username=profile.username or existing.username,
                user_id=profile.user_id or existing.user_id,
                rating=profile.rating if profile.rating is not None else existing.rating,
            )
        return self.registry.register(sid, username=profile.username, user_id=profile.user_id, rating=profile.rating)

    def _resolve_player(self, sid: str, profile: Profile = Profile()) -> Player:
        if profile.present:
            return self._register(sid, profile)
        return self._require_player(sid)

    def _require_player(self, sid: str) -> Player:
        player = self.registry.get(sid)
        if player is None:
            raise NotRegistered()
        return player

    def _release_connection(self, player: Player) -> None:
        self.queue.cancel(player.connection_id)
        self._vacate_room(player)

    def _vacate_room(self, player: Player) -> None:
        if not player.current_room_id:
            return
        room = self.store.lookup(player.current_room_id)
        if room is not None:
            self._leave(room, player.connection_id, player)
        player.current_room_id = None

    # ---- Rooms ----

    def create_room(self, sid: str, msg: CreateRoom) -> Room:
        player = self._resolve_player(sid, msg.profile)
        if msg.max_players is not None and msg.max_players != MAX_PARTICIPANTS:
            raise InvalidOptions(f"Only 1v1 rooms are supported (maxPlayers must be {MAX_PARTICIPANTS})")
        time_limit = self.default_time_limit if msg.time_limit is None else msg.time_limit
        if time_limit <= 0 or time_limit > self.max_time_limit:
            raise InvalidOptions(f"timeLimit must be between 1 and {self.max_time_limit} seconds")
        challenge_id = msg.challenge_id or RANDOM_CHALLENGE
        if challenge_id != RANDOM_CHALLENGE and not self.catalog.exists(challenge_id):
            raise InvalidOptions(f"Unknown challenge {challenge_id}")

        self.queue.cancel(sid)
        self._vacate_room(player)
        room = self.store.create(
            name=msg.name,
            creator_id=player.user_id,
            creator_name=player.username,
            participants=[_participant_for(player)],
            challenge_id=challenge_id,
            time_limit=time_limit,
            is_private=msg.is_private,
            invited_user_id=msg.invite_user_id,
        )
        player.current_room_id = room.id
        self.gateway.to_connection(sid, 'room_created', {
            'roomId': room.id,
            'roomCode': room.join_code,
            'roomName': room.name,
        })
        self._publish_room_list()
        return room

    def join_room(self, sid: str, msg: JoinRoom) -> Room:
        player = self._resolve_player(sid, msg.profile)
        room = self.store.get(msg.room_id) if msg.room_id else self.store.find_by_code(msg.code)
        with room.lock:
            if room.participant(sid) is not None:
                self._send_joined(room, sid)
                return room
            self._check_can_join(room, player, msg.code)

        self.queue.cancel(sid)
        self._vacate_room(player)
        with room.lock:
            if room.closed:
                raise RoomNotFound(room.id)
            self._check_can_join(room, player, msg.code)
            room.add_participant(_participant_for(player))
            player.current_room_id = room.id
            current_app.logger.info(f"[room-join] room={room.id} user={player.user_id} players={len(room.participants)}")
            self._send_joined(room, sid)
            opponent = room.opponent_of(sid)
            if opponent is not None:
                self.gateway.to_connection(opponent.connection_id, 'player_joined', {
                    'username': player.username,
                    'userId': player.user_id,
                    'rating': player.rating,
                })
        self._publish_room_list()
        return room

    def _check_can_join(self, room: Room, player: Player, code: Optional[str]) -> None:
        if room.is_full or room.status == PLAYING:
            raise RoomFull()
        # Submissions and rating changes are keyed by user id.
        if any(p.user_id == player.user_id for p in room.participants):
            raise AlreadyInRoom()
        if room.is_private:
            invited = player.user_id in (room.creator_id, room.invited_user_id)
            has_code = bool(code) and code.strip().upper() == room.join_code
            if not (invited or has_code):
                raise PrivateRoomDenied()

    def _send_joined(self, room: Room, sid: str) -> None:
        opponent = room.opponent_of(sid)
        self.gateway.to_connection(sid, 'joined_room', {
            'roomId': room.id,
            'roomName': room.name,
            'roomCode': room.join_code,
            'opponent': opponent.username if opponent else None,
            'opponentInfo': opponent.to_dict() if opponent else None,
            'timeLimit': room.time_limit,
        })

    def leave_room(self, sid: str, room_id: str) -> None:
        player = self._require_player(sid)
        room = self.store.get(room_id)
        if not self._leave(room, sid, player):
            raise NotInRoom()
        self.gateway.to_connection(sid, 'left_room', {'roomId': room_id})

    def _leave(self, room: Room, sid: str, player: Optional[Player] = None) -> bool:
        """Take ``sid`` out of ``room``. A match in progress is abandoned:
        the room goes back to waiting with nobody ready and no submissions."""
        with room.lock:
            if room.closed:
                return False
            participant = room.remove_participant(sid)
            if participant is None:
                return False
            was_playing = room.status == PLAYING
            if was_playing:
                self._cancel_countdown(room)
                room.reset_to_waiting()
            if not room.participants:
                room.closed = True
            else:
                self.gateway.to_room(room, 'player_left', {
                    'username': participant.username,
                    'userId': participant.user_id,
                    'status': room.status,
                })
            current_app.logger.info(f"[room-leave] room={room.id} user={participant.user_id} "
                        f"aborted_match={was_playing} remaining={len(room.participants)}")
        if room.closed:
            self._cancel_countdown(room)
            self.store.discard(room.id)
        if player is not None and player.current_room_id == room.id:
            player.current_room_id = None
        self._publish_room_list()
        return True

    def list_rooms(self):
        rooms = []
        for room in self.store.rooms():
            with room.lock:
                if room.closed:
                    continue
                rooms.append(room.summary(self.catalog.difficulty_of(room.challenge_id)))
        return rooms

    def request_rematch(self, sid: str, room_id: str) -> None:
        player = self._require_player(sid)
        room = self.store.get(room_id)
        with room.lock:
            if room.participant(sid) is None:
                raise NotInRoom()
            self.gateway.to_room(room, 'system_message', {'message': f"{player.username} wants a rematch!"}, skip=sid)

    # ---- Readiness & challenge start ----

    def set_ready(self, sid: str, room_id: str, is_ready: bool) -> bool:
        """Update readiness; returns True when this update started the challenge."""
        self._require_player(sid)
        room = self.store.get(room_id)
        with room.lock:
            if room.closed:
                raise RoomNotFound(room_id)
            participant = room.participant(sid)
            if participant is None:
                raise NotInRoom()
            if room.status == PLAYING:
                raise AlreadyPlaying()
            participant.ready = bool(is_ready)
            self.gateway.to_room(room, 'player_ready', {
                'username': participant.username,
                'userId': participant.user_id,
                'isReady': participant.ready,
            })
            started = room.both_ready() and self._start_challenge(room)
        if started:
            self._publish_room_list()
        return started

    def _start_challenge(self, room: Room) -> bool:
        # Readiness is a one-shot gate: it never carries over into play.
        for p in room.participants:
            p.ready = False
        challenge = self.catalog.resolve(room.challenge_id)
        if challenge is None:
            current_app.logger.warning(f"[challenge-missing] room={room.id} challenge={room.challenge_id}")
            for p in room.participants:
                self.gateway.to_room(room, 'player_ready', {
                    'username': p.username,
                    'userId': p.user_id,
                    'isReady': False,
                })
            self.gateway.to_room(room, 'error', {'reason': 'no_challenge', 'message': 'No challenges available'})
            return False
        room.status = PLAYING
        room.submissions.clear()
        room.code_snapshots.clear()
        room.active_challenge_id = challenge.id
        room.play_cycle += 1
        room.deadline = self.clock() + room.time_limit
        current_app.logger.info(f"[challenge-start] room={room.id} cycle={room.play_cycle} challenge={challenge.id} "
                    f"time_limit={room.time_limit}s")
        if self.scheduler is not None:
            self.scheduler.start(room.id, room.play_cycle, room.deadline)
        self.gateway.to_room(room, 'challenge_start', {
            'roomId': room.id,
            'challenge': challenge.to_dict(),
            'timeLimit': room.time_limit,
            'deadline': room.deadline,
        })
        return True

    def _cancel_countdown(self, room: Room) -> None:
        if self.scheduler is not None:
            self.scheduler.cancel(room.id)

    # ---- Play ----

    def code_update(self, sid: str, room_id: str, code: str) -> None:
        self._require_player(sid)
        room = self.store.get(room_id)
        with room.lock:
            participant = room.participant(sid)
            if participant is None:
                raise NotInRoom()
            if room.status == PLAYING:
                room.code_snapshots[participant.user_id] = code
            self.gateway.to_room(room, 'code_update', {
                'userId': participant.user_id,
                'username': participant.username,
                'length': len(code),
            }, skip=sid)

    def submit_solution(self, sid: str, room_id: str, code: str) -> Optional[Submission]:
        self._require_player(sid)
        room = self.store.get(room_id)
        with room.lock:
            participant = room.participant(sid)
            if participant is None:
                raise NotInRoom()
            if room.status != PLAYING:
                raise NotInChallenge()
            cycle = room.play_cycle
            challenge_id = room.active_challenge_id

        result = self.evaluator.run(code, self.catalog.get(challenge_id))
        submission = Submission(
            user_id=participant.user_id,
            code=code,
            score=result.score,
            passed=result.passed,
            output=result.output,
            submitted_at=self.clock(),
        )

        completed = None
        with room.lock:
            if not self._cycle_alive(room, cycle) or room.participant(sid) is None:
                current_app.logger.info(f"[submit-discard] room={room.id} user={participant.user_id} cycle={cycle}")
                return None
            room.submissions[participant.user_id] = submission
            current_app.logger.info(f"[submit] room={room.id} user={participant.user_id} score={submission.score} "
                        f"passed={submission.passed}")
            self.gateway.to_connection(sid, 'solution_submitted', dict(submission.result_dict(), roomId=room.id))
            self._send_result_to_opponent(room, participant, submission)
            if all(p.user_id in room.submissions for p in room.participants):
                completed = self._complete_match(room)
        if completed is not None:
            self._publish_room_list()
        return submission

    def expire_countdown(self, room_id: str, play_cycle: Optional[int] = None) -> Optional[MatchResult]:
        """Time is up: auto-submit the last known code of everyone who has
        not submitted, then decide the match."""
        room = self.store.lookup(room_id)
        if room is None:
            current_app.logger.info(f"[timer-abort] room={room_id} gone")
            return None
        with room.lock:
            if not self._cycle_alive(room, play_cycle if play_cycle is not None else room.play_cycle):
                current_app.logger.info(f"[timer-abort] room={room_id} cycle={play_cycle} mismatch status/cycle")
                return None
            cycle = room.play_cycle
            challenge_id = room.active_challenge_id
            pending = [
                (p, room.code_snapshots.get(p.user_id, ''))
                for p in room.participants
                if p.user_id not in room.submissions
            ]

        challenge = self.catalog.get(challenge_id)
        auto = []
        for participant, code in pending:
            if code.strip():
                result = self.evaluator.run(code, challenge)
            else:
                result = EvaluationResult.failed('No submission before time ran out')
            auto.append((participant, Submission(
                user_id=participant.user_id,
                code=code,
                score=result.score,
                passed=result.passed,
                output=result.output,
                submitted_at=self.clock(),
                auto=True,
            )))

        with room.lock:
            if not self._cycle_alive(room, cycle):
                current_app.logger.info(f"[timer-abort] room={room_id} cycle={cycle} ended during auto-submit")
                return None
            for participant, submission in auto:
                if participant.user_id in room.submissions:
                    continue
                room.submissions[participant.user_id] = submission
                current_app.logger.info(f"[auto-submit] room={room.id} user={participant.user_id} score={submission.score}")
                self._send_result_to_opponent(room, participant, submission)
            result = self._complete_match(room)
        self._publish_room_list()
        return result

    def _cycle_alive(self, room: Room, cycle: int) -> bool:
        return not room.closed and room.status == PLAYING and room.play_cycle == cycle

    def _send_result_to_opponent(self, room: Room, participant: ParticipantRef, submission: Submission) -> None:
        opponent = room.opponent_of(participant.connection_id)
        if opponent is None:
            return
        self.gateway.to_connection(opponent.connection_id, 'challenge_result', dict(
            submission.result_dict(),
            roomId=room.id,
            username=participant.username,
            userId=participant.user_id,
        ))

    def _complete_match(self, room: Room) -> MatchResult:
        first, second = room.participants
        result = score_match(_side(first, room), _side(second, room))
        payload = result.to_dict()
        payload['roomId'] = room.id
        for p in room.participants:
            self.gateway.to_connection(p.connection_id, 'match_complete', dict(
                payload,
                ratingChange=result.rating_changes.get(p.user_id, 0),
            ))
        current_app.logger.info(f"[match-complete] room={room.id} cycle={room.play_cycle} "
                    f"winner={result.winner.user_id if result.winner else None} "
                    f"scores={result.player1_score}-{result.player2_score}")
        self._cancel_countdown(room)
        room.reset_to_waiting()
        return result

    # ---- Matchmaking ----

    def find_quick_match(self, sid: str, profile: Profile = Profile()) -> Optional[Room]:
        player = self._resolve_player(sid, profile)
        position = self.queue.enqueue(MatchmakingEntry(
            connection_id=sid,
            user_id=player.user_id,
            username=player.username,
            rating=player.rating,
            joined_at=self.clock(),
        ))
        self._vacate_room(player)
        self.gateway.to_connection(sid, 'matchmaking_update', {
            'message': 'Searching for opponent...',
            'position': position,
        })
        room = self.queue.try_pair(self.store, time_limit=self.default_time_limit)
        if room is not None:
            self._announce_pair(room)
        return room

    def cancel_matchmaking(self, sid: str) -> None:
        self.queue.cancel(sid)

    def _announce_pair(self, room: Room) -> None:
        orphans = []
        with room.lock:
            for p in room.participants:
                player = self.registry.get(p.connection_id)
                if player is None:
                    orphans.append(p.connection_id)
                    continue
                player.current_room_id = room.id
            for p in room.participants:
                if p.connection_id in orphans:
                    continue
                self.gateway.to_connection(p.connection_id, 'matchmaking_update', {'found': True, 'roomId': room.id})
                self._send_joined(room, p.connection_id)
        # A paired connection that dropped before the room existed.
        for sid in orphans:
            self._leave(room, sid)
        self._publish_room_list()

    # ---- Global broadcasts ----

    def _publish_room_list(self) -> None:
        self.gateway.to_all('room_list', self.list_rooms())

    def _publish_online_count(self, count: int) -> None:
        self.gateway.to_all('online_count', {'count': count})


def _participant_for(player: Player) -> ParticipantRef:
    return ParticipantRef(
        connection_id=player.connection_id,
        user_id=player.user_id,
        username=player.username,
        rating=player.rating,
    )


def _side(participant: ParticipantRef, room: Room) -> MatchSide:
    submission = room.submissions.get(participant.user_id)
    return MatchSide(participant.user_id, participant.username, submission.score if submission else 0)
