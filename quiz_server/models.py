from typing import Optional, List
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, UniqueConstraint
from sqlalchemy import JSON as SA_JSON
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


MIN_DIFFICULTY = 1.0
MAX_DIFFICULTY = 5.0
MAX_LIVES = 3

STATUS_ACTIVE = "active"
STATUS_GAME_OVER = "game_over"


class Player(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("name", "age"),)
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    age: int
    created_at: datetime = Field(default_factory=utcnow)


class Category(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("name"),)
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    description: Optional[str] = None


class Admin(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("email"),)
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True)
    password_hash: str
    role: str = "admin"
    created_at: datetime = Field(default_factory=utcnow)


class GameRoom(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("room_code"),)
    id: Optional[int] = Field(default=None, primary_key=True)
    room_code: str = Field(index=True)
    name: str
    description: Optional[str] = None
    admin_id: Optional[int] = Field(default=None, foreign_key="admin.id")
    filter_categories: Optional[List[int]] = Field(default=None, sa_column=Column(SA_JSON, nullable=True))
    filter_difficulties: Optional[List[int]] = Field(default=None, sa_column=Column(SA_JSON, nullable=True))
    max_players: int = 50
    status: str = "active"
    created_at: datetime = Field(default_factory=utcnow)


class GameSession(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    player_id: int = Field(foreign_key="player.id", index=True)
    room_id: Optional[int] = Field(default=None, foreign_key="gameroom.id", index=True)
    current_difficulty: float = MIN_DIFFICULTY
    score: int = 0
    lives: int = MAX_LIVES
    status: str = STATUS_ACTIVE
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class QuestionBatch(SQLModel, table=True):
    """One admin-triggered bulk generation run."""
    id: Optional[int] = Field(default=None, primary_key=True)
    category_id: int = Field(foreign_key="category.id")
    difficulty: int
    quantity: int
    generated: int = 0
    ai_provider: Optional[str] = None
    status: str = "processing"
    created_at: datetime = Field(default_factory=utcnow)


class Question(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    statement: str
    difficulty: int = Field(index=True)
    category_id: int = Field(foreign_key="category.id", index=True)
    is_active: bool = True
    is_ai_generated: bool = False
    admin_verified: bool = False
    batch_id: Optional[int] = Field(default=None, foreign_key="questionbatch.id")
    created_at: datetime = Field(default_factory=utcnow)


class QuestionOption(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    question_id: int = Field(foreign_key="question.id", index=True)
    text: str
    is_correct: bool = False
    position: int = 0


class QuestionExplanation(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("question_id", "explanation_type"),)
    id: Optional[int] = Field(default=None, primary_key=True)
    question_id: int = Field(foreign_key="question.id", index=True)
    text: str
    source_ref: Optional[str] = None
    explanation_type: str = "correct"


class PlayerAnswer(SQLModel, table=True):
    """Append-only answer fact; difficulty_at_answer is the session level before adjustment."""
    __table_args__ = (UniqueConstraint("session_id", "question_id"),)
    id: Optional[int] = Field(default=None, primary_key=True)
    session_id: int = Field(foreign_key="gamesession.id", index=True)
    question_id: int = Field(foreign_key="question.id")
    selected_option_id: Optional[int] = Field(default=None, foreign_key="questionoption.id")
    is_correct: bool
    time_taken_seconds: float
    difficulty_at_answer: float
    created_at: datetime = Field(default_factory=utcnow)
