"""Connection registry — which local socket is in which room, as whom.

Learn: Purely in-process bookkeeping; it never touches the store. Each
server process tracks only its own sockets. Redis pub/sub carries room
events between processes and each process fans out to the sockets it
holds here.

Connections arrive and leave from independent tasks, so every method
takes the lock, finishes without awaiting, and hands out copies.
connections_in_room() is a snapshot: binds and unbinds that happen while
a broadcast iterates it don't affect that broadcast.
"""

import threading
from dataclasses import dataclass
from typing import Optional

from askroom.realtime.connection import Connection
from askroom.schemas.room import Attendee


@dataclass(frozen=True)
class Binding:
    room_id: str
    peer: Attendee


@dataclass
class _Entry:
    connection: Connection
    binding: Optional[Binding] = None


class ConnectionRegistry:
    """Thread-safe map of connection id → (connection, room binding)."""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    def register(self, connection: Connection) -> None:
        with self._lock:
            self._entries.setdefault(connection.id, _Entry(connection=connection))

    def bind(self, connection: Connection, room_id: str, peer: Attendee) -> None:
        """Attach connection to one room as one peer, replacing any earlier binding."""
        with self._lock:
            entry = self._entries.setdefault(connection.id, _Entry(connection=connection))
            entry.binding = Binding(room_id=room_id, peer=peer)

    def unbind(self, connection: Connection) -> Optional[Binding]:
        """Clear the room binding (explicit leave). Returns what was cleared."""
        with self._lock:
            entry = self._entries.get(connection.id)
            if entry is None:
                return None
            binding, entry.binding = entry.binding, None
            return binding

    def unregister(self, connection: Connection) -> Optional[Binding]:
        """Forget the connection entirely (transport closed).

        Returns the prior binding so the caller can run the implicit leave.
        """
        with self._lock:
            entry = self._entries.pop(connection.id, None)
            return entry.binding if entry else None

    def binding_for(self, connection: Connection) -> Optional[Binding]:
        with self._lock:
            entry = self._entries.get(connection.id)
            return entry.binding if entry else None

    def connections_in_room(self, room_id: str) -> tuple[Connection, ...]:
        """Snapshot of connections bound to room_id; safe to iterate repeatedly."""
        with self._lock:
            return tuple(
                e.connection
                for e in self._entries.values()
                if e.binding is not None and e.binding.room_id == room_id
            )

    def peer_bound(self, room_id: str, peer_id: str) -> bool:
        """True if any local connection is bound to room_id as peer_id."""
        with self._lock:
            return any(
                e.binding is not None
                and e.binding.room_id == room_id
                and e.binding.peer.id == peer_id
                for e in self._entries.values()
            )

    def clear_room(self, room_id: str) -> int:
        """Drop every binding to room_id (room closed). Returns how many."""
        cleared = 0
        with self._lock:
            for entry in self._entries.values():
                if entry.binding is not None and entry.binding.room_id == room_id:
                    entry.binding = None
                    cleared += 1
        return cleared

    def room_count(self) -> int:
        with self._lock:
            return len({e.binding.room_id for e in self._entries.values() if e.binding})

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
