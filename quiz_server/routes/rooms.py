from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Optional, List

from quiz_server.auth import get_current_admin
from quiz_server.services import room_service

router = APIRouter(tags=["rooms"])


class RoomIn(BaseModel):
    name: str
    description: Optional[str] = None
    filter_categories: Optional[List[int]] = None
    filter_difficulties: Optional[List[int]] = None
    max_players: int = 50


class RoomStatusIn(BaseModel):
    status: str


@router.post("/admin/rooms", status_code=201, summary="Create a room",
             description="Create a game room with a shareable six-character code.")
def create_room(data: RoomIn, admin=Depends(get_current_admin)):
    try:
        room = room_service.create_room(
            data.name,
            admin_id=admin.id,
            description=data.description,
            filter_categories=data.filter_categories,
            filter_difficulties=data.filter_difficulties,
            max_players=data.max_players,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True, "room": room}


@router.patch("/admin/rooms/{room_id}/status", summary="Change room status")
def update_room_status(room_id: int, data: RoomStatusIn, admin=Depends(get_current_admin)):
    try:
        room = room_service.update_room_status(room_id, data.status)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True, "room": room}


@router.get("/rooms/{code}", summary="Look up a room by code")
def get_room(code: str):
    return {"ok": True, "room": room_service.get_room_by_code(code)}


@router.get("/rooms/{code}/leaderboard", summary="Room leaderboard",
            description="Sessions played in the room, best score first. Clients poll this endpoint.")
def room_leaderboard(code: str, limit: int = 50):
    return {"ok": True, **room_service.room_leaderboard(code, limit=limit)}
