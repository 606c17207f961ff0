"""
WebSocket connection manager.

Clients join a battle room by battle id and receive every event for that
battle as {"event": ..., "data": ...} JSON.
"""

import asyncio
import json
import logging
from typing import Dict, List

from fastapi import WebSocket

logger = logging.getLogger("arena.realtime")

# Inbound event names
INBOUND_EVENTS = ("find_match", "join_battle", "select_strategy", "chat_message")
# Outbound event names
OUTBOUND_EVENTS = ("battle_start", "round_start", "round_end", "battle_end", "chat_message")


class ConnectionManager:
    """Active WebSocket connections grouped by battle id."""

    def __init__(self):
        self.rooms: Dict[str, List[WebSocket]] = {}

    async def connect(self, battle_id: str, ws: WebSocket):
        await ws.accept()
        self.join(battle_id, ws)

    def join(self, battle_id: str, ws: WebSocket):
        room = self.rooms.setdefault(battle_id, [])
        if ws not in room:
            room.append(ws)

    def disconnect(self, ws: WebSocket):
        for battle_id in list(self.rooms):
            room = self.rooms[battle_id]
            if ws in room:
                room.remove(ws)
            if not room:
                del self.rooms[battle_id]

    async def send(self, ws: WebSocket, event: str, data: dict = None):
        await ws.send_text(json.dumps({"event": event, "data": data or {}}, default=str))

    async def broadcast(self, battle_id: str, event: str, data: dict = None):
        """Send an event to every client in the battle's room."""
        message = json.dumps({"event": event, "data": data or {}}, default=str)
        disconnected = []
        for ws in list(self.rooms.get(battle_id, [])):
            try:
                await ws.send_text(message)
            except (RuntimeError, ConnectionError) as e:
                logger.info("Dropping client from %s: %s", battle_id, e)
                disconnected.append(ws)
        for ws in disconnected:
            self.disconnect(ws)

    def broadcast_sync(self, battle_id: str, event: str, data: dict = None):
        """
        Schedule a broadcast from non-async code.

        Skipped when no event loop is running (e.g. plain unit tests).
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        loop.create_task(self.broadcast(battle_id, event, data))

    def client_count(self, battle_id: str) -> int:
        return len(self.rooms.get(battle_id, []))
