import threading
from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class ConnectionContext:
    room_code: str
    player_id: str


class ConnectionRegistry:
    """Live mapping from a socket connection id to the player it speaks for."""

    def __init__(self):
        self._lock = threading.Lock()
        self._by_sid: Dict[str, ConnectionContext] = {}

    def bind(self, sid: str, room_code: str, player_id: str) -> ConnectionContext:
        ctx = ConnectionContext(room_code=room_code, player_id=player_id)
        with self._lock:
            self._by_sid[sid] = ctx
        return ctx

    def get(self, sid: str) -> Optional[ConnectionContext]:
        with self._lock:
            return self._by_sid.get(sid)

    def pop(self, sid: str) -> Optional[ConnectionContext]:
        with self._lock:
            return self._by_sid.pop(sid, None)
