"""
Zen Tasks — HTTP API.

FastAPI app exposing the chat task agent, task listing and editing, the
Telegram webhook and the cron-triggered nudge job. Services are built once
in the lifespan hook, or injected by the caller (tests).
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from zentasks.api.schemas import ListTasksRequest, TaskAgentRequest, UpdateTaskRequest
from zentasks.config import settings
from zentasks.core.nudge_scheduler import NudgeScheduler
from zentasks.core.reply_handler import ReplyHandler
from zentasks.core.task_agent import FALLBACK_REPLY, TaskAgent
from zentasks.data.db import NudgeDB, TaskDB, TaskQuery, UserDB
from zentasks.data.models import TaskStatus

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the routes need, wired together."""

    user_db: UserDB
    task_db: TaskDB
    nudge_db: NudgeDB
    task_agent: TaskAgent
    nudge_scheduler: NudgeScheduler
    reply_handler: ReplyHandler


def build_services(bot) -> Services:
    """Wire the production adapters from settings."""
    from zentasks.adapters.calendar_factory import create_calendar_adapter
    from zentasks.adapters.telegram_notifier import TelegramNotifier
    from zentasks.core.llm import LLMClient
    from zentasks.core.nudge_gate import NudgePolicy

    user_db = UserDB()
    task_db = TaskDB()
    nudge_db = NudgeDB()
    calendar = create_calendar_adapter()
    llm = LLMClient()
    notifier = TelegramNotifier(bot)

    return Services(
        user_db=user_db,
        task_db=task_db,
        nudge_db=nudge_db,
        task_agent=TaskAgent(
            task_db, calendar, llm,
            timezone=settings.TIMEZONE,
            lookahead_days=settings.CALENDAR_LOOKAHEAD_DAYS,
            snooze_max_days=settings.SNOOZE_MAX_DAYS,
        ),
        nudge_scheduler=NudgeScheduler(
            user_db, task_db, nudge_db, calendar, llm, notifier,
            policy=NudgePolicy.from_settings(),
            default_timezone=settings.TIMEZONE,
        ),
        reply_handler=ReplyHandler(
            user_db, nudge_db, llm, notifier, default_timezone=settings.TIMEZONE,
        ),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def create_app(services: Services | None = None) -> FastAPI:
    """Build the FastAPI app. Pass ``services`` to skip the default wiring."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if services is not None:
            yield
            return

        from telegram import Bot

        bot = Bot(settings.TELEGRAM_BOT_TOKEN)
        await bot.initialize()
        app.state.services = build_services(bot)
        logger.info("Services ready (calendar=%s, llm=%s)", settings.CALENDAR_PROVIDER, settings.LLM_PROVIDER)
        yield
        await bot.shutdown()

    app = FastAPI(title="Zen Tasks", lifespan=lifespan)
    if services is not None:
        app.state.services = services

    origins = settings.CORS_ORIGINS or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=origins != ["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.post("/api/task-agent")
    async def task_agent(body: TaskAgentRequest, svc: Services = Depends(get_services)):
        if not body.user_id or not body.message:
            raise HTTPException(status_code=400, detail="Missing required fields: user_id, message")

        try:
            reply = await svc.task_agent.handle_message(
                body.user_id, body.message, history=body.history, mode=body.mode,
            )
        except Exception as exc:
            logger.error("Task agent failed for user %s: %s", body.user_id, exc)
            return JSONResponse(
                status_code=500, content={"replies": [FALLBACK_REPLY], "done": False},
            )
        return reply.to_dict()

    @app.post("/api/list-tasks")
    def list_tasks(body: ListTasksRequest, svc: Services = Depends(get_services)) -> list[dict]:
        if not body.user_id or not body.status:
            raise HTTPException(status_code=400, detail="Missing required fields: user_id, status")
        try:
            status = TaskStatus(body.status)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid status: {body.status}")

        tasks = svc.task_db.query(TaskQuery(user_id=body.user_id, statuses=(status.value,)))
        return [t.to_dict() for t in tasks]

    @app.post("/api/update-task")
    def update_task(body: UpdateTaskRequest, svc: Services = Depends(get_services)) -> dict:
        if not body.task_id or body.fields is None:
            raise HTTPException(status_code=400, detail="Missing required fields: task_id, fields")

        try:
            task = svc.task_db.update_task(body.task_id, body.fields)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except Exception as exc:
            logger.error("Failed to update task %s: %s", body.task_id, exc)
            raise HTTPException(status_code=500, detail="Internal server error")

        if task is None:
            raise HTTPException(status_code=404, detail="Task not found")
        return task.to_dict()

    @app.post("/api/telegram/webhook")
    async def telegram_webhook(request: Request, svc: Services = Depends(get_services)) -> dict:
        try:
            update = await request.json()
            await svc.reply_handler.handle_update(update)
        except Exception as exc:
            logger.error("Webhook update failed: %s", exc)
        return {"ok": True}

    @app.get("/api/cron/nudge")
    async def cron_nudge(
        svc: Services = Depends(get_services),
        authorization: Optional[str] = Header(default=None),
    ):
        if settings.CRON_SECRET and authorization != f"Bearer {settings.CRON_SECRET}":
            raise HTTPException(status_code=401, detail="Unauthorized")

        try:
            report = await svc.nudge_scheduler.run()
        except Exception as exc:
            logger.error("Nudge job failed: %s", exc)
            return JSONResponse(
                status_code=500,
                content={"nudges_sent": 0, "users_processed": 0, "errors": [str(exc)]},
            )
        return report.to_dict()

    return app
