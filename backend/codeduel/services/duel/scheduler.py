import threading
import time
from typing import Callable, Dict, Tuple


class CountdownScheduler:
    """Per-room countdown timers.

    - One live timer per room; starting a new one cancels the previous
    - Wakes every ``tick`` seconds and fires ``on_expire(room_id, play_cycle)``
      once ``deadline`` has passed
    - ``cancel`` stops the worker at its next wake-up; the coordinator also
      ignores expiries whose play cycle is stale
    - No background task when disabled (tests drive expiry directly)
    """

    def __init__(self, app, socketio, on_expire: Callable[[str, int], None], tick: float = 1.0,
                 heartbeat: int = 0, enabled: bool = True):
        self.app = app
        self.socketio = socketio
        self.on_expire = on_expire
        self.tick = tick
        self.heartbeat = heartbeat
        self.enabled = enabled
        self._timers: Dict[str, Tuple[int, threading.Event]] = {}
        self._lock = threading.Lock()

    def start(self, room_id: str, play_cycle: int, deadline: float) -> None:
        cancelled = threading.Event()
        with self._lock:
            previous = self._timers.get(room_id)
            if previous:
                previous[1].set()
            self._timers[room_id] = (play_cycle, cancelled)
        self.app.logger.info(f"[timer-set] room={room_id} cycle={play_cycle} deadline={deadline:.0f} "
                    f"remaining={max(0, deadline - time.time()):.0f}s")
        if self.enabled:
            self.socketio.start_background_task(self._worker, room_id, play_cycle, deadline, cancelled)

    def cancel(self, room_id: str) -> None:
        with self._lock:
            timer = self._timers.pop(room_id, None)
        if timer:
            timer[1].set()
            self.app.logger.info(f"[timer-cancel] room={room_id} cycle={timer[0]}")

    def is_running(self, room_id: str) -> bool:
        with self._lock:
            timer = self._timers.get(room_id)
        return bool(timer) and not timer[1].is_set()

    def _finished(self, room_id: str, cancelled: threading.Event) -> None:
        with self._lock:
            timer = self._timers.get(room_id)
            if timer and timer[1] is cancelled:
                del self._timers[room_id]

    def _worker(self, room_id: str, play_cycle: int, deadline: float, cancelled: threading.Event) -> None:
        last_beat = time.time()
        while not cancelled.is_set():
            remaining = deadline - time.time()
            if remaining <= 0:
                break
            self.socketio.sleep(min(self.tick, remaining))
            if self.heartbeat and time.time() - last_beat >= self.heartbeat:
                last_beat = time.time()
                self.app.logger.info(f"[timer-heartbeat] room={room_id} cycle={play_cycle} "
                            f"remaining={max(0, deadline - time.time()):.0f}s")
        if cancelled.is_set():
            self.app.logger.info(f"[timer-abort] room={room_id} cycle={play_cycle} cancelled")
            return
        self._finished(room_id, cancelled)
        self.app.logger.info(f"[timer-fire] room={room_id} cycle={play_cycle}")
        with self.app.app_context():
            try:
                self.on_expire(room_id, play_cycle)
            except Exception:
                self.app.logger.exception(f"[timer-error] room={room_id} cycle={play_cycle}")
