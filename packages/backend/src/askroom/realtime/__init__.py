"""Real-time layer — sockets, rooms, and cross-process fan-out.

Learn: Room events flow through two hops:
1. Dispatcher → RoomBroadcaster → local sockets bound to the room
2. RoomBroadcaster → Redis PUBLISH → every other process → their sockets

The store stays the source of truth; this layer only tells peers that
something changed.
"""
