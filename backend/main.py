from contextlib import asynccontextmanager
import logging
import sqlite3
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import assistant
import database
import lifecycle
import seed
from audit import AuditSink, SqliteAuditLog
from config import get_settings
from errors import NotFoundError, ValidationError
from logging_setup import setup_logging
from models import (
    Category,
    CategoryCreate,
    CategoryUpdate,
    CategoryWithCounts,
    ChatRequest,
    ChatResult,
    CompletionUpdate,
    InsightsResult,
    ReorderRequest,
    Task,
    TaskCreate,
    TaskUpdate,
    TodayUpdate,
)

settings = get_settings()
setup_logging(settings.log_level)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(_app: FastAPI):
    # Startup
    database.init_db()
    if settings.auto_seed:
        seed.seed_defaults(settings.default_user_email, settings.default_user_id)
    yield
    # Shutdown (nothing to do)

app = FastAPI(title="Notton", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error mapping: 400 validation, 404 not found/not owned, 500 database failure
@app.exception_handler(RequestValidationError)
async def request_validation_handler(_request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(ValidationError)
async def validation_handler(_request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": exc.message})


@app.exception_handler(NotFoundError)
async def not_found_handler(_request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": exc.message})


@app.exception_handler(sqlite3.Error)
async def database_error_handler(request: Request, exc: sqlite3.Error):
    logger.error("Database error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def current_user_id() -> str:
    """Resolve the caller. Every request currently acts as the configured default user."""
    user = database.get_user_by_email(settings.default_user_email)
    if not user:
        raise NotFoundError("Default user not found. Seed the database first.")
    return user.id


def get_audit_sink() -> AuditSink:
    return SqliteAuditLog()


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


# Categories
@app.get("/categories")
def get_categories(user_id: str = Depends(current_user_id)) -> list[CategoryWithCounts]:
    return database.get_categories_with_counts(user_id)


@app.post("/categories", status_code=201)
def create_category(
    category_data: CategoryCreate,
    user_id: str = Depends(current_user_id),
    audit: AuditSink = Depends(get_audit_sink),
) -> Category:
    return lifecycle.create_category(user_id, category_data, audit)


@app.patch("/categories/{category_id}")
def update_category(
    category_id: str,
    category_data: CategoryUpdate,
    user_id: str = Depends(current_user_id),
    audit: AuditSink = Depends(get_audit_sink),
) -> Category:
    return lifecycle.update_category(user_id, category_id, category_data, audit)


@app.delete("/categories/{category_id}")
def delete_category(category_id: str, user_id: str = Depends(current_user_id)) -> dict:
    deleted_tasks = lifecycle.delete_category(user_id, category_id)
    return {"ok": True, "deletedTasks": deleted_tasks}


# Tasks
@app.get("/tasks")
def get_tasks(
    category_id: Optional[str] = None,
    user_id: str = Depends(current_user_id),
) -> list[Task]:
    return database.get_tasks(user_id, category_id)


@app.post("/tasks", status_code=201)
def create_task(
    task_data: TaskCreate,
    user_id: str = Depends(current_user_id),
    audit: AuditSink = Depends(get_audit_sink),
) -> Task:
    return lifecycle.create_task(user_id, task_data, audit)


@app.patch("/tasks/{task_id}")
def update_task(
    task_id: str,
    task_data: TaskUpdate,
    user_id: str = Depends(current_user_id),
    audit: AuditSink = Depends(get_audit_sink),
) -> Task:
    return lifecycle.update_task(user_id, task_id, task_data, audit)


@app.patch("/tasks/{task_id}/today")
def update_task_today(
    task_id: str,
    today_data: TodayUpdate,
    user_id: str = Depends(current_user_id),
    audit: AuditSink = Depends(get_audit_sink),
) -> Task:
    return lifecycle.set_today(user_id, task_id, today_data.in_today, audit, today_data.today_position)


@app.patch("/tasks/{task_id}/complete")
def update_task_completion(
    task_id: str,
    completion_data: CompletionUpdate,
    user_id: str = Depends(current_user_id),
    audit: AuditSink = Depends(get_audit_sink),
) -> Task:
    return lifecycle.set_completion(user_id, task_id, completion_data.completed, audit)


@app.patch("/tasks/{task_id}/archive")
def archive_task(
    task_id: str,
    user_id: str = Depends(current_user_id),
    audit: AuditSink = Depends(get_audit_sink),
) -> dict:
    lifecycle.archive_task(user_id, task_id, audit)
    return {"ok": True}


# Today
@app.get("/today")
def get_today(user_id: str = Depends(current_user_id)) -> list[Task]:
    return database.get_today_tasks(user_id)


@app.post("/today/reorder")
def reorder_today(
    reorder_data: ReorderRequest,
    user_id: str = Depends(current_user_id),
    audit: AuditSink = Depends(get_audit_sink),
) -> dict:
    lifecycle.reorder_today(user_id, reorder_data.task_ids, audit)
    return {"ok": True}


# Assistant
@app.get("/api/chat/context")
def get_chat_context(user_id: Optional[str] = Query(default=None, alias="userId")) -> dict:
    """Snapshot used to build the assistant prompt. An explicit userId overrides the default user."""
    return assistant.build_chat_context(user_id or current_user_id())


@app.post("/api/chat")
async def chat(chat_request: ChatRequest, audit: AuditSink = Depends(get_audit_sink)) -> ChatResult:
    """Process a user message through the assistant; may create a task."""
    user_id = chat_request.user_id or current_user_id()
    return await assistant.chat(user_id, chat_request.message, audit, chat_request.history)


@app.post("/api/chat/insights")
async def chat_insights(user_id: str = Depends(current_user_id)) -> InsightsResult:
    return await assistant.generate_insights(user_id)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
