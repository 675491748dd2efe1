from typing import Iterable, Optional


class BroadcastGateway:
    """Delivers coordinator events over Socket.IO.

    Room-scoped events go to each participant's own connection id, so only
    the sockets currently seated in the room receive them.
    """

    def __init__(self, socketio, namespace: str = '/ws'):
        self.socketio = socketio
        self.namespace = namespace

    def to_connection(self, connection_id: str, event: str, data=None) -> None:
        self.socketio.emit(event, data, to=connection_id, namespace=self.namespace)

    def to_connections(self, connection_ids: Iterable[str], event: str, data=None) -> None:
        for sid in connection_ids:
            self.to_connection(sid, event, data)

    def to_room(self, room, event: str, data=None, skip: Optional[str] = None) -> None:
        self.to_connections(
            (p.connection_id for p in list(room.participants) if p.connection_id != skip),
            event,
            data,
        )

    def to_all(self, event: str, data=None) -> None:
        self.socketio.emit(event, data, namespace=self.namespace)
