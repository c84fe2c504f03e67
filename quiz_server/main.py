from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from quiz_server.auth import router as auth_router
from quiz_server.errors import QuizError, StorageError
from quiz_server.utils.env import ensure_env_loaded
from quiz_server.routes.games import router as games_router
from quiz_server.routes.players import router as players_router
from quiz_server.routes.questions import router as questions_router
from quiz_server.routes.rooms import router as rooms_router
from quiz_server.routes.observability import router as observability_router
from quiz_server.services.ai.orchestrator import get_orchestrator
from quiz_server.db import create_db_and_tables, engine
from contextlib import asynccontextmanager
import os
import logging

logger = logging.getLogger("quiz_server")


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_env_loaded()
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    create_db_and_tables()
    logger.info("AI providers: %s", [p["name"] for p in get_orchestrator().available_providers()] or "none")
    yield


app = FastAPI(
    title="Adaptive Quiz",
    description="Backend for adaptive quiz sessions with AI-generated questions and provider failover. See `/docs` for OpenAPI UI.",
    version="0.3.0",
    lifespan=lifespan,
)

# CORS
allowed_origins = os.getenv("CORS_ORIGINS", "*").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in allowed_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(QuizError)
async def quiz_error_handler(request: Request, exc: QuizError):
    if isinstance(exc, StorageError):
        logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": exc.detail},
                        headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
    message = f"{field}: {first.get('msg', 'invalid value')}" if field else first.get("msg", "invalid request")
    return JSONResponse(status_code=400, content={"ok": False, "error": message})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"ok": False, "error": "Internal server error"},
    )


app.include_router(auth_router)
app.include_router(games_router)
app.include_router(players_router)
app.include_router(questions_router)
app.include_router(rooms_router)
app.include_router(observability_router)


@app.get("/health")
def health_check():
    checks: dict[str, object] = {"ok": True, "status": "ok"}
    # DB connectivity check
    try:
        from sqlalchemy import text
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        checks["db"] = "ok"
    except Exception as e:
        checks["db"] = f"error: {e}"
        checks["status"] = "degraded"
    orch = get_orchestrator()
    checks["ai_providers"] = [p["name"] for p in orch.available_providers()]
    checks["ai_active"] = orch.active_provider_name
    return checks
