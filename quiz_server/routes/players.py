from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from typing import List

from quiz_server.db import get_session
from quiz_server.errors import NotFound
from quiz_server.services.game_engine import game
from quiz_server.services.stores import PlayerStore

router = APIRouter(tags=["players"])


class PlayerIn(BaseModel):
    name: str
    age: int


class PlayerOut(BaseModel):
    id: int
    name: str
    age: int


class PlayerEnvelope(BaseModel):
    ok: bool = True
    player: PlayerOut


class PlayerList(BaseModel):
    ok: bool = True
    players: List[PlayerOut]


class LevelStats(BaseModel):
    level: int
    answered: int
    correct: int
    accuracy: float
    avg_time_seconds: float


class PlayerStatsOut(BaseModel):
    ok: bool = True
    player_id: int
    name: str
    sessions: int
    best_score: int
    total_answers: int
    correct_answers: int
    per_level: List[LevelStats]


@router.post("/players", response_model=PlayerEnvelope, status_code=201, summary="Create or fetch a player",
             description="Players are identified by (name, age); posting an existing pair returns that player.")
def create_player(data: PlayerIn):
    with get_session() as db:
        try:
            player = PlayerStore(db).get_or_create(data.name, data.age)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        db.commit()
        return {"player": {"id": player.id, "name": player.name, "age": player.age}}


@router.get("/players", response_model=PlayerList, summary="List players")
def list_players(limit: int = 100):
    with get_session() as db:
        players = PlayerStore(db).list(limit=limit)
        return {"players": [{"id": p.id, "name": p.name, "age": p.age} for p in players]}


@router.get("/players/{player_id}", response_model=PlayerEnvelope, summary="Get a player")
def get_player(player_id: int):
    with get_session() as db:
        player = PlayerStore(db).find(player_id)
        if not player:
            raise NotFound(f"player {player_id} not found")
        return {"player": {"id": player.id, "name": player.name, "age": player.age}}


@router.get("/stats/players/{player_id}", response_model=PlayerStatsOut, summary="Player statistics",
            description="Session totals and per-level accuracy, grouped by the session difficulty at answer time.")
def player_stats(player_id: int):
    return game.player_stats(player_id)
