from typing import Any, Dict, List, Optional

from quiz_server.db import get_session
from quiz_server.errors import NotFound, OutOfRange
from quiz_server.models import GameRoom, Player
from quiz_server.services.stores import RoomStore

ROOM_STATUSES = ("active", "paused", "closed")


def _room_payload(room: GameRoom, active_players: Optional[int] = None) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "id": room.id,
        "room_code": room.room_code,
        "name": room.name,
        "description": room.description,
        "filter_categories": room.filter_categories,
        "filter_difficulties": room.filter_difficulties,
        "max_players": room.max_players,
        "status": room.status,
    }
    if active_players is not None:
        out["active_players"] = active_players
    return out


def create_room(name: str, admin_id: Optional[int] = None, description: Optional[str] = None,
                filter_categories: Optional[List[int]] = None, filter_difficulties: Optional[List[int]] = None,
                max_players: int = 50) -> Dict[str, Any]:
    if not (name or "").strip():
        raise ValueError("room name is required")
    if max_players < 1 or max_players > 500:
        raise OutOfRange("max_players must be between 1 and 500")
    for level in filter_difficulties or []:
        if level < 1 or level > 5:
            raise OutOfRange("difficulty filters must be between 1 and 5")

    with get_session() as db:
        room = RoomStore(db).create(
            name,
            admin_id=admin_id,
            description=description,
            filter_categories=filter_categories,
            filter_difficulties=filter_difficulties,
            max_players=max_players,
        )
        db.commit()
        return _room_payload(room, active_players=0)


def get_room_by_code(code: str) -> Dict[str, Any]:
    with get_session() as db:
        rooms = RoomStore(db)
        room = rooms.get_by_code(code)
        if not room:
            raise NotFound(f"room {code!r} not found")
        return _room_payload(room, rooms.count_active_players(room.id))


def update_room_status(room_id: int, status: str) -> Dict[str, Any]:
    if status not in ROOM_STATUSES:
        raise ValueError(f"status must be one of {', '.join(ROOM_STATUSES)}")
    with get_session() as db:
        rooms = RoomStore(db)
        room = rooms.get(room_id)
        if not room:
            raise NotFound(f"room {room_id} not found")
        rooms.update_status(room, status)
        db.commit()
        return _room_payload(room, rooms.count_active_players(room.id))


def room_leaderboard(code: str, limit: int = 50) -> Dict[str, Any]:
    """Sessions in the room ranked by score; clients poll this."""
    with get_session() as db:
        rooms = RoomStore(db)
        room = rooms.get_by_code(code)
        if not room:
            raise NotFound(f"room {code!r} not found")
        entries = []
        for sess in rooms.sessions(room.id)[:limit]:
            player = db.get(Player, sess.player_id)
            entries.append({
                "session_id": sess.id,
                "player_id": sess.player_id,
                "player_name": player.name if player else None,
                "score": sess.score,
                "lives": sess.lives,
                "status": sess.status,
                "current_difficulty": sess.current_difficulty,
            })
        return {"room": _room_payload(room, rooms.count_active_players(room.id)), "entries": entries}
