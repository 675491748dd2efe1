import pytest

from codeduel.services.duel.exceptions import AlreadyQueued
from codeduel.services.duel.matchmaking import MatchmakingEntry, MatchmakingQueue
from codeduel.services.duel.rooms import RoomStore, WAITING


def _entry(n):
    return MatchmakingEntry(connection_id=f'sid{n}', user_id=f'u{n}', username=f'P{n}', rating=1350 + n)


def test_single_entry_does_not_pair():
    queue, store = MatchmakingQueue(), RoomStore()
    assert queue.enqueue(_entry(1)) == 1
    assert queue.try_pair(store) is None
    assert len(queue) == 1
    assert len(store) == 0


def test_two_entries_pair_into_one_room():
    queue, store = MatchmakingQueue(), RoomStore()
    queue.enqueue(_entry(1))
    assert queue.enqueue(_entry(2)) == 2
    room = queue.try_pair(store, time_limit=120)
    assert room is not None
    assert len(queue) == 0
    assert [p.user_id for p in room.participants] == ['u1', 'u2']
    assert all(not p.ready for p in room.participants)
    assert room.challenge_id == 'random'
    assert room.is_private is False
    assert room.status == WAITING
    assert room.time_limit == 120
    assert room.name == 'Quick Match'
    assert room.id in store


def test_pairs_oldest_first():
    queue, store = MatchmakingQueue(), RoomStore()
    for n in range(1, 4):
        queue.enqueue(_entry(n))
    room = queue.try_pair(store)
    assert [p.user_id for p in room.participants] == ['u1', 'u2']
    # The third player moved to the front, never backwards
    assert queue.position('sid3') == 1


def test_duplicate_user_rejected():
    queue = MatchmakingQueue()
    queue.enqueue(_entry(1))
    dup = MatchmakingEntry(connection_id='other', user_id='u1', username='P1', rating=1350)
    with pytest.raises(AlreadyQueued):
        queue.enqueue(dup)
    assert len(queue) == 1


def test_cancel_is_always_safe():
    queue = MatchmakingQueue()
    assert queue.cancel('missing') is None
    queue.enqueue(_entry(1))
    queue.enqueue(_entry(2))
    assert queue.cancel('sid1').user_id == 'u1'
    assert queue.position('sid2') == 1
    assert 'sid1' not in queue
