"""SQLModel-backed stores used by the game engine.

Each store wraps a caller-owned DB session and never commits on its own, so
one engine operation can group several writes into a single transaction.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional
import secrets

from sqlalchemy import func
from sqlmodel import Session, col, select

from quiz_server.errors import NotFound, OutOfRange
from quiz_server.models import (
    Category,
    GameRoom,
    GameSession,
    Player,
    PlayerAnswer,
    Question,
    QuestionExplanation,
    QuestionOption,
    STATUS_ACTIVE,
    MAX_LIVES,
    MIN_DIFFICULTY,
    MAX_DIFFICULTY,
    utcnow,
)
from quiz_server.services.difficulty import within_range

REQUIRED_OPTIONS = 4
EXPLANATION_TYPES = ("correct", "incorrect")

ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ROOM_CODE_LENGTH = 6
ROOM_CODE_ATTEMPTS = 10


class PlayerStore:
    def __init__(self, db: Session):
        self.db = db

    def find(self, player_id: int) -> Optional[Player]:
        return self.db.get(Player, player_id)

    def find_by_name_age(self, name: str, age: int) -> Optional[Player]:
        q = select(Player).where((Player.name == name) & (Player.age == age))
        return self.db.exec(q).first()

    def get_or_create(self, name: str, age: int) -> Player:
        name = (name or "").strip()
        if not name:
            raise ValueError("name is required")
        if age < 1 or age > 120:
            raise OutOfRange("age must be between 1 and 120")
        existing = self.find_by_name_age(name, age)
        if existing:
            return existing
        player = Player(name=name, age=age)
        self.db.add(player)
        self.db.flush()
        return player

    def list(self, limit: int = 100) -> List[Player]:
        return list(self.db.exec(select(Player).order_by(Player.id).limit(limit)).all())


class QuestionStore:
    def __init__(self, db: Session):
        self.db = db

    def find_verified_by_difficulty(self, category_id: int, difficulty: int,
                                    exclude_session_id: Optional[int] = None) -> Optional[Question]:
        """Newest active, admin-verified question at exactly this level."""
        q = select(Question).where(
            (Question.category_id == category_id)
            & (Question.difficulty == difficulty)
            & (Question.is_active == True)  # noqa: E712
            & (Question.admin_verified == True)  # noqa: E712
        )
        if exclude_session_id is not None:
            answered = select(PlayerAnswer.question_id).where(PlayerAnswer.session_id == exclude_session_id)
            q = q.where(col(Question.id).not_in(answered))
        q = q.order_by(col(Question.created_at).desc(), col(Question.id).desc()).limit(1)
        return self.db.exec(q).first()

    def get(self, question_id: int) -> Optional[Question]:
        return self.db.get(Question, question_id)

    def create(self, statement: str, difficulty: int, category_id: int, is_ai_generated: bool = False,
               admin_verified: bool = False, batch_id: Optional[int] = None) -> Question:
        statement = (statement or "").strip()
        if not statement:
            raise ValueError("statement cannot be empty")
        if not within_range(difficulty, MIN_DIFFICULTY, MAX_DIFFICULTY):
            raise OutOfRange("difficulty must be between 1 and 5")
        question = Question(
            statement=statement,
            difficulty=int(difficulty),
            category_id=category_id,
            is_active=True,
            is_ai_generated=is_ai_generated,
            admin_verified=admin_verified,
            batch_id=batch_id,
        )
        self.db.add(question)
        self.db.flush()
        return question

    def save_options(self, question_id: int, options: Iterable[Dict[str, Any]],
                     required_count: Optional[int] = REQUIRED_OPTIONS) -> List[QuestionOption]:
        options = list(options)
        if required_count is not None and len(options) != required_count:
            raise ValueError(f"a question needs exactly {required_count} options")
        if not options:
            raise ValueError("a question needs at least one option")

        seen = set()
        correct = 0
        for opt in options:
            if "text" not in opt or "is_correct" not in opt:
                raise ValueError("each option needs 'text' and 'is_correct'")
            text = str(opt["text"]).strip()
            if not text:
                raise ValueError("option text cannot be empty")
            if text in seen:
                raise ValueError(f"duplicate option text: {text!r}")
            seen.add(text)
            if opt["is_correct"]:
                correct += 1
        if correct != 1:
            raise ValueError("exactly one option must be correct")

        saved = []
        for position, opt in enumerate(options):
            row = QuestionOption(
                question_id=question_id,
                text=str(opt["text"]).strip(),
                is_correct=bool(opt["is_correct"]),
                position=position,
            )
            self.db.add(row)
            saved.append(row)
        self.db.flush()
        return saved

    def save_explanation(self, question_id: int, text: str, source_ref: Optional[str] = None,
                         explanation_type: str = "correct") -> QuestionExplanation:
        text = (text or "").strip()
        if not text:
            raise ValueError("explanation text cannot be empty")
        if explanation_type not in EXPLANATION_TYPES:
            raise ValueError("explanation_type must be 'correct' or 'incorrect'")
        row = QuestionExplanation(question_id=question_id, text=text, source_ref=source_ref,
                                  explanation_type=explanation_type)
        self.db.add(row)
        self.db.flush()
        return row

    def get_options(self, question_id: int) -> List[QuestionOption]:
        q = select(QuestionOption).where(QuestionOption.question_id == question_id).order_by(
            QuestionOption.position, QuestionOption.id)
        return list(self.db.exec(q).all())

    def get_option(self, option_id: int) -> Optional[QuestionOption]:
        return self.db.get(QuestionOption, option_id)

    def get_explanation(self, question_id: int, explanation_type: str = "correct") -> Optional[QuestionExplanation]:
        q = select(QuestionExplanation).where(
            (QuestionExplanation.question_id == question_id)
            & (QuestionExplanation.explanation_type == explanation_type)
        )
        return self.db.exec(q).first()

    def get_category_name(self, category_id: int) -> str:
        category = self.db.get(Category, category_id)
        if not category:
            raise NotFound(f"category {category_id} not found")
        return category.name

    def create_category(self, name: str, description: Optional[str] = None) -> Category:
        category = Category(name=name.strip(), description=description)
        self.db.add(category)
        self.db.flush()
        return category

    def list_categories(self) -> List[Category]:
        return list(self.db.exec(select(Category).order_by(Category.name)).all())

    def set_verified(self, question_id: int, verified: bool = True) -> Question:
        question = self.get(question_id)
        if not question:
            raise NotFound(f"question {question_id} not found")
        question.admin_verified = verified
        self.db.add(question)
        self.db.flush()
        return question

    def list_unverified(self, batch_id: Optional[int] = None, limit: int = 100) -> List[Question]:
        q = select(Question).where(
            (Question.admin_verified == False) & (Question.is_active == True)  # noqa: E712
        )
        if batch_id is not None:
            q = q.where(Question.batch_id == batch_id)
        q = q.order_by(col(Question.created_at).desc()).limit(limit)
        return list(self.db.exec(q).all())


class SessionStore:
    def __init__(self, db: Session):
        self.db = db

    def start(self, player_id: int, difficulty: float, room_id: Optional[int] = None) -> GameSession:
        if not within_range(difficulty, MIN_DIFFICULTY, MAX_DIFFICULTY):
            raise OutOfRange("difficulty must be between 1.00 and 5.00")
        sess = GameSession(
            player_id=player_id,
            room_id=room_id,
            current_difficulty=round(float(difficulty), 2),
            score=0,
            lives=MAX_LIVES,
            status=STATUS_ACTIVE,
        )
        self.db.add(sess)
        self.db.flush()
        return sess

    def get(self, session_id: int, for_update: bool = False) -> Optional[GameSession]:
        if not for_update:
            return self.db.get(GameSession, session_id)
        q = select(GameSession).where(GameSession.id == session_id).with_for_update()
        return self.db.exec(q).first()

    def update_progress(self, sess: GameSession, score: int, lives: int, status: str,
                        difficulty: float) -> GameSession:
        if not within_range(difficulty, MIN_DIFFICULTY, MAX_DIFFICULTY):
            raise OutOfRange("difficulty must be between 1.00 and 5.00")
        sess.score = score
        sess.lives = lives
        sess.status = status
        sess.current_difficulty = difficulty
        sess.updated_at = utcnow()
        self.db.add(sess)
        self.db.flush()
        return sess

    def list_for_player(self, player_id: int) -> List[GameSession]:
        q = select(GameSession).where(GameSession.player_id == player_id).order_by(GameSession.id)
        return list(self.db.exec(q).all())


class AnswerStore:
    def __init__(self, db: Session):
        self.db = db

    def append(self, session_id: int, question_id: int, option_id: Optional[int], is_correct: bool,
               time_taken: float, difficulty_at_answer: float) -> PlayerAnswer:
        fact = PlayerAnswer(
            session_id=session_id,
            question_id=question_id,
            selected_option_id=option_id,
            is_correct=is_correct,
            time_taken_seconds=float(time_taken),
            difficulty_at_answer=float(difficulty_at_answer),
        )
        self.db.add(fact)
        self.db.flush()
        return fact

    def for_sessions(self, session_ids: List[int]) -> List[PlayerAnswer]:
        if not session_ids:
            return []
        q = select(PlayerAnswer).where(col(PlayerAnswer.session_id).in_(session_ids)).order_by(PlayerAnswer.id)
        return list(self.db.exec(q).all())


def generate_room_code() -> str:
    return "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))


class RoomStore:
    def __init__(self, db: Session, code_factory: Callable[[], str] = generate_room_code):
        self.db = db
        self.code_factory = code_factory

    def _unique_code(self) -> str:
        for _ in range(ROOM_CODE_ATTEMPTS):
            code = self.code_factory()
            if self.get_by_code(code) is None:
                return code
        raise RuntimeError(f"could not generate a unique room code after {ROOM_CODE_ATTEMPTS} attempts")

    def create(self, name: str, admin_id: Optional[int] = None, description: Optional[str] = None,
               filter_categories: Optional[List[int]] = None,
               filter_difficulties: Optional[List[int]] = None, max_players: int = 50) -> GameRoom:
        room = GameRoom(
            room_code=self._unique_code(),
            name=name.strip(),
            description=description,
            admin_id=admin_id,
            filter_categories=filter_categories,
            filter_difficulties=filter_difficulties,
            max_players=max_players,
        )
        self.db.add(room)
        self.db.flush()
        return room

    def get(self, room_id: int) -> Optional[GameRoom]:
        return self.db.get(GameRoom, room_id)

    def get_by_code(self, code: str) -> Optional[GameRoom]:
        return self.db.exec(select(GameRoom).where(GameRoom.room_code == code.strip().upper())).first()

    def count_active_players(self, room_id: int) -> int:
        q = select(func.count(func.distinct(GameSession.player_id))).where(
            (GameSession.room_id == room_id) & (GameSession.status == STATUS_ACTIVE)
        )
        return int(self.db.exec(q).one() or 0)

    def sessions(self, room_id: int) -> List[GameSession]:
        q = select(GameSession).where(GameSession.room_id == room_id).order_by(
            col(GameSession.score).desc(), GameSession.id)
        return list(self.db.exec(q).all())

    def update_status(self, room: GameRoom, status: str) -> GameRoom:
        room.status = status
        self.db.add(room)
        self.db.flush()
        return room
