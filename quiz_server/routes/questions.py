from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from sqlmodel import select

from quiz_server.auth import get_current_admin
from quiz_server.db import get_session
from quiz_server.errors import NotFound, OutOfRange
from quiz_server.models import Category
from quiz_server.services.ai.orchestrator import get_orchestrator
from quiz_server.services.game_engine import game
from quiz_server.services.stores import QuestionStore

router = APIRouter(tags=["questions"])


class CategoryIn(BaseModel):
    name: str
    description: Optional[str] = None


class OptionIn(BaseModel):
    text: str
    is_correct: bool = False


class QuestionIn(BaseModel):
    statement: str
    difficulty: int
    category_id: int
    options: List[OptionIn]
    explanation_correct: Optional[str] = None
    explanation_incorrect: Optional[str] = None
    source_ref: Optional[str] = None


class GenerateIn(BaseModel):
    category_id: int
    difficulty: int
    quantity: int = 1


class ValidateIn(BaseModel):
    question: str
    answer: str


def _category_payload(category: Category) -> Dict[str, Any]:
    return {"id": category.id, "name": category.name, "description": category.description}


def _admin_question_payload(store: QuestionStore, question) -> Dict[str, Any]:
    """Full question view for reviewers, correctness and explanations included."""
    correct = store.get_explanation(question.id, "correct")
    incorrect = store.get_explanation(question.id, "incorrect")
    return {
        "id": question.id,
        "statement": question.statement,
        "difficulty": question.difficulty,
        "category_id": question.category_id,
        "is_ai_generated": question.is_ai_generated,
        "admin_verified": question.admin_verified,
        "batch_id": question.batch_id,
        "options": [{"id": o.id, "text": o.text, "is_correct": o.is_correct}
                    for o in store.get_options(question.id)],
        "explanation_correct": correct.text if correct else None,
        "explanation_incorrect": incorrect.text if incorrect else None,
    }


@router.get("/categories", summary="List categories")
def list_categories():
    with get_session() as db:
        return {"ok": True, "categories": [_category_payload(c) for c in QuestionStore(db).list_categories()]}


@router.post("/admin/categories", status_code=201, summary="Create a category")
def create_category(data: CategoryIn, admin=Depends(get_current_admin)):
    name = data.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="name is required")
    with get_session() as db:
        if db.exec(select(Category).where(Category.name == name)).first():
            raise HTTPException(status_code=400, detail="category already exists")
        category = QuestionStore(db).create_category(name, data.description)
        db.commit()
        return {"ok": True, "category": _category_payload(category)}


@router.get("/questions/{question_id}", summary="Get a question",
            description="Direct lookup; option correctness is not exposed.")
def get_question(question_id: int):
    with get_session() as db:
        store = QuestionStore(db)
        question = store.get(question_id)
        if not question or not question.is_active:
            raise NotFound(f"question {question_id} not found")
        return {
            "ok": True,
            "question": {
                "id": question.id,
                "statement": question.statement,
                "difficulty": question.difficulty,
                "category_id": question.category_id,
                "options": [{"id": o.id, "text": o.text} for o in store.get_options(question.id)],
            },
        }


@router.post("/admin/questions", status_code=201, summary="Author a question",
             description="Save a hand-written question. Authored questions are verified immediately.")
def create_question(data: QuestionIn, admin=Depends(get_current_admin)):
    if data.difficulty < 1 or data.difficulty > 5:
        raise OutOfRange("difficulty must be between 1 and 5")
    with get_session() as db:
        store = QuestionStore(db)
        store.get_category_name(data.category_id)
        try:
            question = store.create(data.statement, data.difficulty, data.category_id, admin_verified=True)
            store.save_options(question.id, [o.model_dump() for o in data.options])
            if data.explanation_correct:
                store.save_explanation(question.id, data.explanation_correct, data.source_ref, "correct")
            if data.explanation_incorrect:
                store.save_explanation(question.id, data.explanation_incorrect, data.source_ref, "incorrect")
        except ValueError as e:
            db.rollback()
            raise HTTPException(status_code=400, detail=str(e))
        db.commit()
        return {"ok": True, "question": _admin_question_payload(store, question)}


@router.get("/admin/questions/unverified", summary="Questions awaiting review")
def list_unverified(batch_id: Optional[int] = None, limit: int = 100, admin=Depends(get_current_admin)):
    with get_session() as db:
        store = QuestionStore(db)
        questions = store.list_unverified(batch_id=batch_id, limit=limit)
        return {"ok": True, "questions": [_admin_question_payload(store, q) for q in questions]}


@router.post("/admin/questions/{question_id}/verify", summary="Verify a question",
             description="Mark a question as reviewed so it can be served from the store.")
def verify_question(question_id: int, admin=Depends(get_current_admin)):
    with get_session() as db:
        store = QuestionStore(db)
        question = store.set_verified(question_id, True)
        db.commit()
        return {"ok": True, "question": _admin_question_payload(store, question)}


@router.post("/admin/questions/generate", status_code=201, summary="Generate questions with AI",
             description="Generate a batch of questions for review. Provider failures surface as 502/503.")
def generate_questions(data: GenerateIn, admin=Depends(get_current_admin)):
    result = game.generate_batch(data.category_id, data.difficulty, data.quantity)
    return {"ok": True, **result}


@router.get("/admin/ai/providers", summary="Configured AI providers")
def ai_providers(admin=Depends(get_current_admin)):
    orch = get_orchestrator()
    return {
        "ok": True,
        "active": orch.active_provider_name,
        "providers": orch.available_providers(),
        "last_errors": orch.last_errors,
    }


@router.post("/admin/ai/validate", summary="Validate an answer with AI",
             description="Ask the active provider whether a free-text answer is correct.")
def validate_answer(data: ValidateIn, admin=Depends(get_current_admin)):
    if not data.question.strip() or not data.answer.strip():
        raise HTTPException(status_code=400, detail="question and answer are required")
    orch = get_orchestrator()
    result = orch.validate_answer(data.question, data.answer)
    return {
        "ok": True,
        "is_correct": result.is_correct,
        "explanation": result.explanation,
        "provider": result.provider,
        "failover": orch.had_failover,
    }
