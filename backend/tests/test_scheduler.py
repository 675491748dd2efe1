import time

from codeduel.services.duel.messages import CreateRoom, JoinRoom, Profile
from codeduel.services.duel.scheduler import CountdownScheduler


class DeferredSocketIO:
    """Collects background tasks so tests decide when they run."""

    def __init__(self):
        self.tasks = []

    def start_background_task(self, target, *args):
        self.tasks.append((target, args))

    def sleep(self, seconds):
        time.sleep(seconds)

    def run_all(self):
        tasks, self.tasks = self.tasks, []
        for target, args in tasks:
            target(*args)


def _scheduler(flask_app, fired, **kwargs):
    sio = DeferredSocketIO()
    scheduler = CountdownScheduler(flask_app, sio, on_expire=lambda rid, cycle: fired.append((rid, cycle)),
                                   tick=0.01, **kwargs)
    return scheduler, sio


def test_fires_after_deadline(flask_app):
    fired = []
    scheduler, sio = _scheduler(flask_app, fired)
    scheduler.start('room_1', 3, time.time() + 0.05)
    assert scheduler.is_running('room_1')
    sio.run_all()
    assert fired == [('room_1', 3)]
    assert not scheduler.is_running('room_1')


def test_cancel_prevents_expiry(flask_app):
    fired = []
    scheduler, sio = _scheduler(flask_app, fired)
    scheduler.start('room_1', 1, time.time() - 1)
    scheduler.cancel('room_1')
    sio.run_all()
    assert fired == []
    assert not scheduler.is_running('room_1')


def test_restart_replaces_previous_timer(flask_app):
    fired = []
    scheduler, sio = _scheduler(flask_app, fired)
    scheduler.start('room_1', 1, time.time() - 1)
    scheduler.start('room_1', 2, time.time() - 1)
    sio.run_all()
    assert fired == [('room_1', 2)]


def test_disabled_scheduler_starts_no_task(flask_app):
    fired = []
    scheduler, sio = _scheduler(flask_app, fired, enabled=False)
    scheduler.start('room_1', 1, time.time() - 1)
    assert sio.tasks == []
    assert scheduler.is_running('room_1')
    assert fired == []


def test_countdown_expiry_completes_match(scheduled_app, gateway, evaluator):
    coordinator = scheduled_app.extensions['codeduel']
    coordinator.gateway = gateway
    coordinator.evaluator.evaluator = evaluator
    coordinator.register('sidA', Profile(username='alice', user_id='u_alice'))
    coordinator.register('sidB', Profile(username='bob', user_id='u_bob'))
    room = coordinator.create_room('sidA', CreateRoom(name='Blitz', challenge_id='1', time_limit=1))
    coordinator.join_room('sidB', JoinRoom(room_id=room.id))
    coordinator.set_ready('sidA', room.id, True)
    assert coordinator.set_ready('sidB', room.id, True) is True
    coordinator.code_update('sidA', room.id, 'score:40')

    deadline = time.time() + 5
    while not gateway.events_for('sidB', 'match_complete') and time.time() < deadline:
        time.sleep(0.05)

    done = gateway.events_for('sidB', 'match_complete')
    assert len(done) == 1
    assert done[0]['winnerId'] == 'u_alice'
    assert done[0]['ratingChange'] == -15
    with room.lock:
        assert room.status == 'waiting'
    assert not coordinator.scheduler.is_running(room.id)
