"""
Goal Tracker Service - FastAPI application.

Hosts the Bot Framework webhook and runs the background loops:
- Reminder scheduler
- Deletion sweeper
- Background task queue
"""
import hmac
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from botbuilder.core import BotFrameworkAdapter, BotFrameworkAdapterSettings
from botbuilder.schema import Activity
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from goal_tracker import __version__
from goal_tracker.bot import GoalTrackerBot
from goal_tracker.config.settings import Settings, get_settings
from goal_tracker.services.goal_cycle_closer import GoalCycleCloser
from goal_tracker.services.installation import InstallationService
from goal_tracker.services.notification_dispatcher import NotificationDispatcher
from goal_tracker.services.proactive_messaging import create_proactive_messaging_service
from goal_tracker.services.retry_policy import DeliveryRetryPolicy
from goal_tracker.services.team_goal_status import TeamGoalStatusService
from goal_tracker.storage.providers import StorageProviders, create_storage_providers
from goal_tracker.workers.background_tasks import BackgroundTaskQueue
from goal_tracker.workers.deletion_sweeper import DeletionSweeper
from goal_tracker.workers.reminder_scheduler import ReminderScheduler

logger = logging.getLogger(__name__)


@dataclass
class GoalTrackerServices:
    """Everything the application wires together at startup."""
    storage: StorageProviders
    adapter: BotFrameworkAdapter
    dispatcher: NotificationDispatcher
    closer: GoalCycleCloser
    scheduler: ReminderScheduler
    sweeper: DeletionSweeper
    task_queue: BackgroundTaskQueue
    installation: InstallationService
    team_goal_status: TeamGoalStatusService
    bot: GoalTrackerBot


def build_services(settings: Settings) -> GoalTrackerServices:
    storage = create_storage_providers(settings.storage.connection_string)

    adapter = BotFrameworkAdapter(BotFrameworkAdapterSettings(
        app_id=settings.bot.app_id,
        app_password=settings.bot.app_password,
        channel_auth_tenant=settings.bot.tenant_id
    ))
    messaging = create_proactive_messaging_service(
        settings.bot.app_id,
        settings.bot.app_password,
        settings.bot.tenant_id,
        adapter=adapter
    )

    dispatcher = NotificationDispatcher(
        notifier=messaging,
        roster=messaging,
        personal_goals=storage.personal_goals,
        teams=storage.teams,
        goals_tab_url=settings.bot.goals_tab_url,
        retry_policy=DeliveryRetryPolicy(
            retry_count=settings.delivery.retry_count,
            median_first_delay=settings.delivery.median_first_delay,
            is_transient=messaging.is_transient
        )
    )
    closer = GoalCycleCloser(
        personal_goals=storage.personal_goals,
        notes=storage.notes,
        team_goals=storage.team_goals,
        teams=storage.teams,
        roster=messaging,
        dispatcher=dispatcher
    )
    task_queue = BackgroundTaskQueue()
    installation = InstallationService(storage.teams, storage.personal_goals, dispatcher, task_queue)

    return GoalTrackerServices(
        storage=storage,
        adapter=adapter,
        dispatcher=dispatcher,
        closer=closer,
        scheduler=ReminderScheduler(
            storage.personal_goals,
            storage.team_goals,
            dispatcher,
            closer,
            cron_expression=settings.schedule.reminder_cron
        ),
        sweeper=DeletionSweeper(
            storage.personal_goals,
            storage.notes,
            storage.team_goals,
            cron_expression=settings.schedule.deletion_sweep_cron
        ),
        task_queue=task_queue,
        installation=installation,
        team_goal_status=TeamGoalStatusService(storage.personal_goals, storage.team_goals),
        bot=GoalTrackerBot(installation)
    )


def create_app(settings: Optional[Settings] = None, services: Optional[GoalTrackerServices] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager - startup and shutdown."""
        configure_logging(settings.log_level)
        logger.info("Goal tracker service starting up...")

        app.state.services = services or build_services(settings)
        running = app.state.services

        await running.storage.ensure_ready()
        running.task_queue.start()
        if settings.schedule.enable_reminder_scheduler:
            running.scheduler.start()
        if settings.schedule.enable_deletion_sweeper:
            running.sweeper.start()

        yield

        logger.info("Goal tracker service shutting down...")
        await running.scheduler.stop(timeout=settings.schedule.task_queue_drain_timeout)
        await running.sweeper.stop(timeout=settings.schedule.task_queue_drain_timeout)
        await running.task_queue.stop(timeout=settings.schedule.task_queue_drain_timeout)
        await running.storage.close()

    app = FastAPI(
        title="Goal Tracker Service",
        description="Goal reminders and cycle closure for Microsoft Teams",
        version=__version__,
        lifespan=lifespan
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def verify_api_key(x_api_key: Optional[str] = Header(None)) -> bool:
        """Verify API key for read-only status endpoints."""
        if not x_api_key:
            raise HTTPException(status_code=401, detail="API key required")

        expected_key = settings.api_key or ""
        if not expected_key or not hmac.compare_digest(x_api_key, expected_key):
            logger.warning("Invalid API key attempt for goal status endpoint")
            raise HTTPException(status_code=403, detail="Invalid API key")
        return True

    @app.get("/health")
    async def health_check():
        """Health check endpoint for Azure Container Apps."""
        running = getattr(app.state, "services", None)
        return {
            "status": "healthy",
            "service": "goal-tracker",
            "version": __version__,
            "pending_tasks": running.task_queue.pending if running else 0
        }

    @app.post("/api/messages")
    async def messages(request: Request):
        """
        Bot Framework webhook endpoint.

        No API key required - uses Azure AD authentication from Bot Framework.
        """
        running: GoalTrackerServices = app.state.services
        try:
            body = await request.json()
            activity = Activity().deserialize(body)
            auth_header = request.headers.get("Authorization", "")

            logger.info(f"Received Teams activity: {activity.type}")
            response = await running.adapter.process_activity(activity, auth_header, running.bot.on_turn)
            if response:
                return JSONResponse(content=response.body, status_code=response.status)
            return JSONResponse(content={"status": "ok"}, status_code=200)

        except PermissionError as e:
            logger.warning(f"Rejected unauthenticated activity: {e}")
            return JSONResponse(content={"error": "Unauthorized"}, status_code=401)
        except Exception as e:
            logger.error(f"Error in bot webhook: {e}", exc_info=True)
            return JSONResponse(content={"error": str(e)}, status_code=500)

    @app.get("/api/teams/{team_id}/goal-status")
    async def team_goal_status(team_id: str, _: bool = Depends(verify_api_key)):
        """Progress of personal goals aligned to each active team goal."""
        running: GoalTrackerServices = app.state.services
        statuses = await running.team_goal_status.get_team_goal_statuses(team_id)
        return [status.model_dump() for status in statuses]

    return app


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


# Served with: uvicorn goal_tracker.main:app
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=3978)
