import os
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.config import settings
from app.database import SessionLocal, engine, get_db, init_db
from app.errors import PlatformError, SessionNotStartedError, TokenValidationError
from app.logging_config import append_json_line, get_logger, setup_logging
from app.models import ChatSession, Group, GroupMessage, Message, User
from app.routers import realtime, send, webhook
from app.runtime import build_runtime

setup_logging(settings.log_level, service=settings.app_name)

logger = get_logger("main")

app = FastAPI(
    title=settings.app_name,
    description="WhatsApp relay: menu bot, agent handoff and message log",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(send.router)
app.include_router(webhook.router)
app.include_router(realtime.router)


def _is_env_enabled(value: str | None, default: bool = True) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no", "off"}


def _is_supervisor_enabled() -> bool:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return False
    return settings.supervisor_enabled and _is_env_enabled(os.environ.get("AGENT_TIMEOUT_WORKER_ENABLED"))


@app.exception_handler(SessionNotStartedError)
async def session_not_started_handler(request: Request, exc: SessionNotStartedError):
    return JSONResponse(status_code=404, content={"success": 0, "message": "Session not started"})


@app.exception_handler(TokenValidationError)
async def token_error_handler(request: Request, exc: TokenValidationError):
    content = {"success": False, "message": exc.message}
    if exc.details is not None:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(PlatformError)
async def platform_error_handler(request: Request, exc: PlatformError):
    logger.error(f"Bridge error on {request.url.path}: {exc}", extra={"context": {"status_code": exc.status_code}})
    return JSONResponse(status_code=502, content={"error": 1, "message": "Messaging platform error"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.url.path}", exc_info=exc)
    append_json_line(
        settings.error_log_path,
        {"details": repr(exc), "path": request.url.path, "date": datetime.now(timezone.utc).isoformat()},
    )
    return JSONResponse(status_code=500, content={"error": 1, "message": "Server error"})


@app.on_event("startup")
async def start_runtime() -> None:
    try:
        init_db()
    except Exception:
        logger.critical("Could not initialize the database", exc_info=True)
        raise
    logger.info("Database tables verified")

    runtime = build_runtime(settings, SessionLocal)
    app.state.runtime = runtime
    runtime.dispatcher.start()
    if _is_supervisor_enabled():
        runtime.supervisor.start()
    logger.info(f"{settings.app_name} started", extra={"context": {"env": settings.app_env}})


@app.on_event("shutdown")
async def stop_runtime() -> None:
    runtime = getattr(app.state, "runtime", None)
    if runtime is None:
        return
    logger.info("Shutting down...")
    await runtime.supervisor.stop()
    await runtime.dispatcher.close(timeout=settings.shutdown_drain_seconds)
    await runtime.hub.broadcast("shutdown", {"success": 1})
    await runtime.client.aclose()
    engine.dispose()
    app.state.runtime = None


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/db-check")
def db_check(db: Session = Depends(get_db)):
    return {
        "status": "ok",
        "sessions": db.query(ChatSession).count(),
        "users": db.query(User).count(),
        "groups": db.query(Group).count(),
        "messages": db.query(Message).count(),
        "group_messages": db.query(GroupMessage).count(),
    }
