from dataclasses import dataclass
from threading import Lock
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from quiz_server.db import get_session
from quiz_server.errors import (
    MalformedResponse,
    NotFound,
    OutOfRange,
    QuizError,
    RoomUnavailable,
    SessionClosed,
    StorageError,
)
from quiz_server.models import (
    MAX_DIFFICULTY,
    MIN_DIFFICULTY,
    STATUS_ACTIVE,
    STATUS_GAME_OVER,
    GameSession,
    Question,
    QuestionBatch,
)
from quiz_server.services.ai.orchestrator import AIOrchestrator, get_orchestrator
from quiz_server.services.difficulty import (
    DifficultyPolicy,
    difficulty_level,
    nearest_allowed_level,
    next_difficulty,
    score_delta,
    within_range,
)
from quiz_server.services.observability import telemetry
from quiz_server.services.stores import AnswerStore, PlayerStore, QuestionStore, RoomStore, SessionStore

logger = logging.getLogger("game_engine")

# Submits are serialised per session through a fixed pool of locks.
SESSION_LOCK_STRIPES = 64

FALLBACK_FEEDBACK = {
    True: "Correct! You have shown a good grasp of this concept.",
    False: "Not this time. Review the concept before the next question.",
}

_UNSET = object()


@dataclass
class QuestionLookup:
    """Outcome of a next-question request: a question, or the reason there is none."""
    question: Optional[Dict[str, Any]] = None
    source: Optional[str] = None
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.question is not None


def _question_payload(question: Question, options, include_flags: bool = False) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": question.id,
        "statement": question.statement,
        "difficulty": question.difficulty,
        "category_id": question.category_id,
        "options": [{"id": o.id, "text": o.text} for o in options],
    }
    if include_flags:
        payload["is_ai_generated"] = question.is_ai_generated
        payload["admin_verified"] = question.admin_verified
    return payload


def _session_payload(sess: GameSession) -> Dict[str, Any]:
    return {
        "session_id": sess.id,
        "player_id": sess.player_id,
        "room_id": sess.room_id,
        "current_difficulty": sess.current_difficulty,
        "score": sess.score,
        "lives": sess.lives,
        "status": sess.status,
    }


class GameEngine:
    def __init__(self, orchestrator: Any = _UNSET, policy: Optional[DifficultyPolicy] = None):
        # _UNSET means "use the process-wide orchestrator"; None disables AI generation.
        self.orch = orchestrator
        self.policy = policy or DifficultyPolicy.from_env()
        self._locks: List[Lock] = [Lock() for _ in range(SESSION_LOCK_STRIPES)]

    def _get_orch(self) -> Optional[AIOrchestrator]:
        if self.orch is _UNSET:
            return get_orchestrator()
        return self.orch

    def _session_lock(self, session_id: int) -> Lock:
        return self._locks[session_id % len(self._locks)]

    def start_session(self, player_id: int, start_difficulty: float = 1.0,
                      room_code: Optional[str] = None) -> Dict[str, Any]:
        if start_difficulty is None:
            start_difficulty = 1.0
        if not within_range(start_difficulty, MIN_DIFFICULTY, MAX_DIFFICULTY):
            raise OutOfRange("start_difficulty must be between 1.0 and 5.0")

        with get_session() as db:
            try:
                player = PlayerStore(db).find(player_id)
                if not player:
                    raise NotFound(f"player {player_id} not found")

                room = None
                if room_code:
                    rooms = RoomStore(db)
                    room = rooms.get_by_code(room_code)
                    if not room:
                        raise NotFound("room code is not valid")
                    if room.status != "active":
                        raise RoomUnavailable("room is not active")
                    if rooms.count_active_players(room.id) >= room.max_players:
                        raise RoomUnavailable("room is full")

                sess = SessionStore(db).start(player_id, start_difficulty, room_id=room.id if room else None)
                db.commit()
            except QuizError:
                db.rollback()
                raise
            except SQLAlchemyError as e:
                db.rollback()
                logger.exception("Failed to start session for player %s", player_id)
                raise StorageError("could not start session") from e

            out: Dict[str, Any] = {
                "session_id": sess.id,
                "current_difficulty": sess.current_difficulty,
                "status": sess.status,
            }
            if room is not None:
                out["room"] = {
                    "id": room.id,
                    "room_code": room.room_code,
                    "name": room.name,
                    "filter_categories": room.filter_categories,
                    "filter_difficulties": room.filter_difficulties,
                }
            logger.info("Started session %s for player %s at difficulty %.2f", sess.id, player_id,
                        sess.current_difficulty)
            return out

    def get_session_state(self, session_id: int) -> Dict[str, Any]:
        with get_session() as db:
            sess = SessionStore(db).get(session_id)
            if not sess:
                raise NotFound(f"session {session_id} not found")
            return _session_payload(sess)

    def next_question(self, category_id: int, difficulty: int,
                      session_id: Optional[int] = None) -> QuestionLookup:
        if not within_range(difficulty, MIN_DIFFICULTY, MAX_DIFFICULTY):
            raise OutOfRange("difficulty must be between 1 and 5")
        difficulty = int(difficulty)

        with get_session() as db:
            if session_id is not None:
                sess = SessionStore(db).get(session_id)
                if not sess:
                    raise NotFound(f"session {session_id} not found")
                if sess.status != STATUS_ACTIVE:
                    raise SessionClosed("session is over")
                if sess.room_id is not None:
                    room = RoomStore(db).get(sess.room_id)
                    if room is not None:
                        if room.filter_categories and category_id not in room.filter_categories:
                            raise OutOfRange(f"category {category_id} is not played in this room")
                        difficulty = nearest_allowed_level(difficulty, room.filter_difficulties)

            store = QuestionStore(db)
            hit = store.find_verified_by_difficulty(category_id, difficulty, exclude_session_id=session_id)
            if hit:
                return QuestionLookup(_question_payload(hit, store.get_options(hit.id)), source="store")

        orch = self._get_orch()
        if orch is None or len(orch) == 0:
            telemetry.record_question_fallback("no_ai_configured")
            logger.info("No stored question for category=%s difficulty=%s and no AI configured",
                        category_id, difficulty)
            return QuestionLookup(reason="no_ai_configured")

        try:
            question = self._generate_and_persist(orch, category_id, difficulty)
        except Exception as e:
            # Clients get the error class only; the message stays in the log.
            reason = e.__class__.__name__
            telemetry.record_question_fallback(reason)
            logger.warning("AI question generation failed for category=%s difficulty=%s: %s: %s",
                           category_id, difficulty, reason, e)
            return QuestionLookup(reason=reason)
        return QuestionLookup(question, source="ai")

    def generate_and_save_question(self, category_id: int, difficulty: int,
                                   batch_id: Optional[int] = None) -> Dict[str, Any]:
        """Admin path: like the AI branch of next_question, but failures propagate."""
        if not within_range(difficulty, MIN_DIFFICULTY, MAX_DIFFICULTY):
            raise OutOfRange("difficulty must be between 1 and 5")
        orch = self._get_orch()
        if orch is None:
            raise QuizError("AI generation is not configured")
        return self._generate_and_persist(orch, category_id, difficulty, batch_id=batch_id)

    def generate_batch(self, category_id: int, difficulty: int, quantity: int) -> Dict[str, Any]:
        """Generate several questions for admin review under one QuestionBatch.

        Stops at the first failure. A batch that produced nothing re-raises
        that failure; one that produced some questions is marked partial.
        """
        if quantity < 1 or quantity > 50:
            raise OutOfRange("quantity must be between 1 and 50")
        if not within_range(difficulty, MIN_DIFFICULTY, MAX_DIFFICULTY):
            raise OutOfRange("difficulty must be between 1 and 5")

        with get_session() as db:
            QuestionStore(db).get_category_name(category_id)
            batch = QuestionBatch(category_id=category_id, difficulty=difficulty, quantity=quantity)
            db.add(batch)
            db.commit()
            batch_id = batch.id

        generated: List[Dict[str, Any]] = []
        failure: Optional[Exception] = None
        for _ in range(quantity):
            try:
                generated.append(self.generate_and_save_question(category_id, difficulty, batch_id=batch_id))
            except Exception as e:
                failure = e
                logger.warning("Batch %s stopped after %d/%d questions: %s", batch_id, len(generated), quantity, e)
                break

        orch = self._get_orch()
        with get_session() as db:
            batch = db.get(QuestionBatch, batch_id)
            batch.generated = len(generated)
            batch.ai_provider = orch.active_provider_name if orch is not None else None
            if failure is None:
                batch.status = "completed"
            else:
                batch.status = "partial" if generated else "failed"
            db.add(batch)
            db.commit()
            status = batch.status

        if failure is not None and not generated:
            raise failure
        return {
            "batch_id": batch_id,
            "status": status,
            "requested": quantity,
            "generated": len(generated),
            "questions": generated,
            "error": str(failure) if failure else None,
        }

    def _generate_and_persist(self, orch: AIOrchestrator, category_id: int, difficulty: int,
                              batch_id: Optional[int] = None) -> Dict[str, Any]:
        with get_session() as db:
            topic = QuestionStore(db).get_category_name(category_id)

        # No DB connection is held while providers are called.
        generated = orch.generate(topic, difficulty)

        with get_session() as db:
            store = QuestionStore(db)
            try:
                question = store.create(
                    generated.statement,
                    difficulty,
                    category_id,
                    is_ai_generated=True,
                    admin_verified=False,
                    batch_id=batch_id,
                )
                options = store.save_options(question.id, generated.options_payload())
                if generated.explanation_correct:
                    store.save_explanation(question.id, generated.explanation_correct, generated.source_ref, "correct")
                if generated.explanation_incorrect:
                    store.save_explanation(question.id, generated.explanation_incorrect, generated.source_ref,
                                           "incorrect")
                db.commit()
            except ValueError as e:
                db.rollback()
                raise MalformedResponse(f"generated question rejected: {e}", provider=generated.provider) from e
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageError("could not save generated question") from e

            logger.info("Saved AI question %s (provider=%s, category=%s, difficulty=%s)",
                        question.id, generated.provider, category_id, difficulty)
            payload = _question_payload(question, options, include_flags=True)
            payload["provider"] = generated.provider
            return payload

    def submit_answer(self, session_id: int, question_id: int, option_id: Optional[int],
                      is_correct: bool, time_taken: float) -> Dict[str, Any]:
        if not within_range(time_taken, 0.0, float("inf")):
            raise OutOfRange("time_taken must be zero or greater")

        with self._session_lock(session_id), get_session() as db:
            try:
                sessions = SessionStore(db)
                questions = QuestionStore(db)

                sess = sessions.get(session_id, for_update=True)
                if not sess:
                    raise NotFound(f"session {session_id} not found")
                if sess.status != STATUS_ACTIVE:
                    raise SessionClosed("session is over; start a new game")
                if not questions.get(question_id):
                    raise NotFound(f"question {question_id} not found")

                if option_id is not None:
                    option = questions.get_option(option_id)
                    if not option or option.question_id != question_id:
                        raise NotFound(f"option {option_id} does not belong to question {question_id}")
                    is_correct = bool(option.is_correct)
                is_correct = bool(is_correct)

                current = sess.current_difficulty
                AnswerStore(db).append(session_id, question_id, option_id, is_correct, time_taken, current)

                new_score = sess.score + score_delta(is_correct, time_taken, self.policy)
                new_lives = sess.lives if is_correct else max(0, sess.lives - 1)
                status = STATUS_GAME_OVER if new_lives == 0 else STATUS_ACTIVE
                new_difficulty = next_difficulty(current, is_correct, time_taken, self.policy)
                sessions.update_progress(sess, new_score, new_lives, status, new_difficulty)

                explanation = questions.get_explanation(question_id, "correct" if is_correct else "incorrect")
                correct_option_id = next((o.id for o in questions.get_options(question_id) if o.is_correct), None)
                db.commit()
            except QuizError:
                db.rollback()
                raise
            except IntegrityError as e:
                db.rollback()
                raise StorageError("question already answered in this session") from e
            except SQLAlchemyError as e:
                db.rollback()
                logger.exception("Failed to record answer for session %s", session_id)
                raise StorageError("could not record answer") from e

        if status == STATUS_GAME_OVER:
            logger.info("Session %s is over with score %s", session_id, new_score)
        return {
            "is_correct": is_correct,
            "score": new_score,
            "lives": new_lives,
            "status": status,
            "next_difficulty": new_difficulty,
            "explanation": explanation.text if explanation else FALLBACK_FEEDBACK[is_correct],
            "correct_option_id": correct_option_id,
        }

    def player_stats(self, player_id: int) -> Dict[str, Any]:
        with get_session() as db:
            player = PlayerStore(db).find(player_id)
            if not player:
                raise NotFound(f"player {player_id} not found")
            sessions = SessionStore(db).list_for_player(player_id)
            answers = AnswerStore(db).for_sessions([s.id for s in sessions])

        levels: Dict[int, Dict[str, Any]] = {}
        for ans in answers:
            level = difficulty_level(ans.difficulty_at_answer)
            bucket = levels.setdefault(level, {"level": level, "answered": 0, "correct": 0, "time_sum": 0.0})
            bucket["answered"] += 1
            bucket["correct"] += 1 if ans.is_correct else 0
            bucket["time_sum"] += ans.time_taken_seconds

        per_level: List[Dict[str, Any]] = []
        for level in sorted(levels):
            b = levels[level]
            per_level.append({
                "level": level,
                "answered": b["answered"],
                "correct": b["correct"],
                "accuracy": round(b["correct"] / b["answered"], 3),
                "avg_time_seconds": round(b["time_sum"] / b["answered"], 2),
            })

        return {
            "player_id": player.id,
            "name": player.name,
            "sessions": len(sessions),
            "best_score": max((s.score for s in sessions), default=0),
            "total_answers": len(answers),
            "correct_answers": sum(1 for a in answers if a.is_correct),
            "per_level": per_level,
        }


game = GameEngine()
