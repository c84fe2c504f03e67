from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from typing import Optional, List, Any, Dict

from quiz_server.errors import NotFound, OutOfRange
from quiz_server.services.difficulty import difficulty_level, within_range
from quiz_server.services.game_engine import game

router = APIRouter(prefix="/games", tags=["games"])


# ── Request models ──────────────────────────────────────────────

class StartIn(BaseModel):
    player_id: int
    start_difficulty: Optional[float] = Field(1.0, allow_inf_nan=False)
    room_code: Optional[str] = None


class AnswerIn(BaseModel):
    question_id: int
    selected_option_id: Optional[int] = None
    is_correct: bool
    time_taken: float = Field(..., allow_inf_nan=False)


# ── Response models ─────────────────────────────────────────────

class RoomSummary(BaseModel):
    id: int
    room_code: str
    name: str
    filter_categories: Optional[List[int]] = None
    filter_difficulties: Optional[List[int]] = None


class StartOut(BaseModel):
    ok: bool = True
    session_id: int
    current_difficulty: float
    status: str
    room: Optional[RoomSummary] = None


class OptionOut(BaseModel):
    """Answer option as shown to players (correctness hidden)."""
    id: int
    text: str


class QuestionOut(BaseModel):
    id: int
    statement: str
    difficulty: int
    category_id: Optional[int] = None
    options: List[OptionOut] = []
    is_ai_generated: Optional[bool] = None
    admin_verified: Optional[bool] = None


class NextOut(BaseModel):
    ok: bool = True
    question: QuestionOut
    source: Optional[str] = None


class AnswerOut(BaseModel):
    ok: bool = True
    is_correct: bool
    score: int
    lives: int
    status: str
    next_difficulty: float
    explanation: Optional[str] = None
    correct_option_id: Optional[int] = None


class SessionOut(BaseModel):
    ok: bool = True
    session_id: int
    player_id: int
    room_id: Optional[int] = None
    current_difficulty: float
    score: int
    lives: int
    status: str


@router.post("/start", response_model=StartOut, status_code=201, summary="Start a game session",
             description="Start an adaptive session for an existing player, optionally inside a room.")
def start_game(data: StartIn):
    if data.player_id <= 0:
        raise HTTPException(status_code=400, detail="player_id must be > 0")
    try:
        return game.start_session(data.player_id, data.start_difficulty, room_code=data.room_code)
    except NotFound as e:
        raise HTTPException(status_code=400, detail=e.message)


@router.get("/next", response_model=NextOut, summary="Next question",
            description="Return a verified question for the category and level, generating one with AI when "
                        "the store has none. 404 when no question is available.",
            responses={404: {"description": "No question available"}})
def next_question(category_id: int = Query(..., gt=0), difficulty: float = Query(..., allow_inf_nan=False),
                  session_id: Optional[int] = Query(None, gt=0)):
    if not within_range(difficulty, 1, 5):
        raise OutOfRange("difficulty must be between 1 and 5")
    lookup = game.next_question(category_id, difficulty_level(difficulty), session_id=session_id)
    if not lookup:
        body: Dict[str, Any] = {"ok": False, "error": "No questions available"}
        if lookup.reason:
            body["reason"] = lookup.reason
        return JSONResponse(status_code=404, content=body)
    return {"question": lookup.question, "source": lookup.source}


@router.get("/{session_id}", response_model=SessionOut, summary="Session state")
def get_game(session_id: int):
    return game.get_session_state(session_id)


@router.post("/{session_id}/answer", response_model=AnswerOut, summary="Submit an answer",
             description="Record an answer and return the updated score, lives, status and next difficulty. "
                         "When selected_option_id is given its stored correctness is used.")
def submit_answer(session_id: int, data: AnswerIn):
    return game.submit_answer(
        session_id,
        data.question_id,
        data.selected_option_id,
        data.is_correct,
        data.time_taken,
    )
