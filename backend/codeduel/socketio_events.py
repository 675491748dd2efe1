from flask import current_app, request
from flask_socketio import emit

from codeduel import get_coordinator, socketio
from codeduel.services.duel.exceptions import DuelError
from codeduel.services.duel.messages import PARSERS, parse_message


def handle_connect(auth=None):
    emit('connected', {'sid': request.sid})


def handle_disconnect(reason=None):
    get_coordinator().disconnect(request.sid)


def _make_handler(event: str):
    def handler(data=None):
        try:
            message = parse_message(event, data)
            get_coordinator().handle(request.sid, message)
        except DuelError as exc:
            current_app.logger.info(f"[rejected] sid={request.sid} event={event} reason={exc.reason} message={exc.message}")
            emit('error', dict(exc.to_dict(), event=event))
    handler.__name__ = f"handle_{event}"
    return handler


def register_socketio_handlers(namespace: str = '/ws') -> None:
    """Register Socket.IO event handlers.

    Every protocol event goes through ``parse_message`` and then the
    coordinator; coordinator errors are reported to the sender only.
    """
    socketio.on_event('connect', handle_connect, namespace=namespace)
    socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
    for event in PARSERS:
        socketio.on_event(event, _make_handler(event), namespace=namespace)
