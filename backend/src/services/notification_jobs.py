"""
Notification job registry and runner.

Maps each job type to its scheduler processor through a static table, and
publishes the cron schedule (UTC) the deployment should install. Job runs
come from three triggers: the cron schedule, a domain event (match
settlement enqueues the win-streak check) or a manual CLI invocation.
"""

import enum
import time
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Callable, Mapping, Optional, Tuple

import httpx
from sqlalchemy.orm import Session

from backend.src.config.settings import AppSettings, get_settings
from backend.src.services.expo_push_service import ExpoPushService
from backend.src.services.notification_preference_service import NotificationPreferenceService
from backend.src.services.notification_scheduler_service import (
    NotificationSchedulerService,
    ProcessorResult,
)
from backend.src.services.notification_service import NotificationService
from backend.src.utils.logging_config import get_logger
from backend.src.utils.notification_cache import NotificationCache, create_notification_cache


logger = get_logger("scheduler")


class NotificationJobType(str, enum.Enum):
    """Kinds of notification job."""
    GAME_REMINDERS = "game-reminders"
    SLIP_EXPIRING = "slip-expiring"
    DAILY_DIGEST = "daily-digest"
    WEEKLY_RECAP = "weekly-recap"
    INACTIVITY_CHECK = "inactivity-check"
    WIN_STREAK_CHECK = "win-streak-check"
    LEADERBOARD_PROXIMITY = "leaderboard-proximity"
    EXPO_RECEIPTS = "expo-receipts"
    DEFERRED_NOTIFICATIONS = "deferred-notifications"


class JobTrigger(str, enum.Enum):
    """What caused a job run."""
    SCHEDULED = "scheduled"
    SETTLEMENT = "settlement"
    MANUAL = "manual"


@dataclass(frozen=True)
class NotificationJobData:
    """
    Payload of one job run.

    Attributes:
        job_type: Processor to run
        triggered_by: Trigger source
        user_id: Target user (win-streak check only)
        now: Decision instant override (tests, backfills)
    """
    job_type: NotificationJobType
    triggered_by: JobTrigger = JobTrigger.SCHEDULED
    user_id: Optional[int] = None
    now: Optional[datetime] = None


@dataclass(frozen=True)
class ScheduledJob:
    """A cron entry (UTC) for a repeatable job."""
    job_type: NotificationJobType
    cron: str
    description: str


SCHEDULED_JOBS: Tuple[ScheduledJob, ...] = (
    ScheduledJob(NotificationJobType.GAME_REMINDERS, "*/15 * * * *", "Events starting in 1-2 hours"),
    ScheduledJob(NotificationJobType.SLIP_EXPIRING, "*/5 * * * *", "Slips locking within 20 minutes"),
    ScheduledJob(NotificationJobType.DAILY_DIGEST, "0 * * * *", "Users at their local digest hour"),
    # Hourly every day; the processor gates on each user's local weekday
    ScheduledJob(NotificationJobType.WEEKLY_RECAP, "0 * * * *", "Users at their local recap day and hour"),
    ScheduledJob(NotificationJobType.INACTIVITY_CHECK, "0 */6 * * *", "48h / 7d inactive users"),
    ScheduledJob(NotificationJobType.LEADERBOARD_PROXIMITY, "0 17 * * *", "Users within reach of the top 10"),
    ScheduledJob(NotificationJobType.EXPO_RECEIPTS, "*/15 * * * *", "Reconcile push receipts"),
    ScheduledJob(NotificationJobType.DEFERRED_NOTIFICATIONS, "30 * * * *", "Quiet-hours redelivery"),
)


JobHandler = Callable[[NotificationSchedulerService, NotificationJobData], ProcessorResult]

JOB_HANDLERS: Mapping[NotificationJobType, JobHandler] = MappingProxyType({
    NotificationJobType.GAME_REMINDERS: lambda s, job: s.process_game_reminders(now=job.now),
    NotificationJobType.SLIP_EXPIRING: lambda s, job: s.process_slip_expiring(now=job.now),
    NotificationJobType.DAILY_DIGEST: lambda s, job: s.process_daily_digest(now=job.now),
    NotificationJobType.WEEKLY_RECAP: lambda s, job: s.process_weekly_recap(now=job.now),
    NotificationJobType.INACTIVITY_CHECK: lambda s, job: s.process_inactivity_check(now=job.now),
    NotificationJobType.WIN_STREAK_CHECK: lambda s, job: s.process_win_streak_check(
        user_id=job.user_id, now=job.now
    ),
    NotificationJobType.LEADERBOARD_PROXIMITY: lambda s, job: s.process_leaderboard_proximity(now=job.now),
    NotificationJobType.EXPO_RECEIPTS: lambda s, job: s.process_expo_receipts(now=job.now),
    NotificationJobType.DEFERRED_NOTIFICATIONS: lambda s, job: s.process_deferred_notifications(now=job.now),
})


def build_scheduler(
    db: Session,
    settings: Optional[AppSettings] = None,
    cache: Optional[NotificationCache] = None,
    http_client: Optional[httpx.Client] = None,
) -> NotificationSchedulerService:
    """
    Wire the notification services for one session.

    Args:
        db: SQLAlchemy session shared by every service
        settings: Application settings (defaults to get_settings())
        cache: Gate cache (defaults to the configured backend)
        http_client: httpx client for the push gateway (tests inject a mock)

    Returns:
        NotificationSchedulerService ready to run jobs
    """
    settings = settings or get_settings()
    cache = cache or create_notification_cache(settings.redis_url)

    push_service = ExpoPushService(
        db,
        client=http_client,
        push_url=settings.expo_push_url,
        receipts_url=settings.expo_receipts_url,
        access_token=settings.expo_access_token,
        timeout=settings.expo_request_timeout_seconds,
    )
    preference_service = NotificationPreferenceService(
        db,
        cache=cache,
        default_timezone=settings.default_timezone,
    )
    notification_service = NotificationService(
        db,
        cache=cache,
        push_service=push_service,
        preference_service=preference_service,
        daily_cap=settings.daily_cap,
        enabled=settings.notifications_enabled,
        default_timezone=settings.default_timezone,
        inbox_expiry_days=settings.inbox_expiry_days,
    )
    return NotificationSchedulerService(
        db,
        notification_service,
        batch_limit=settings.batch_limit,
        inactivity_enabled=settings.inactivity_enabled,
        default_timezone=settings.default_timezone,
    )


def run_job(
    job: NotificationJobData,
    scheduler: NotificationSchedulerService,
    scheduler_enabled: bool = True,
) -> ProcessorResult:
    """
    Dispatch a job to its processor.

    Cron-triggered runs are skipped when the scheduler is disabled;
    event-triggered and manual runs always execute.

    Args:
        job: Job payload
        scheduler: Wired scheduler service
        scheduler_enabled: Feature switch for cron-triggered runs

    Returns:
        ProcessorResult of the processor
    """
    job_type = NotificationJobType(job.job_type)

    if job.triggered_by == JobTrigger.SCHEDULED and not scheduler_enabled:
        logger.info("Scheduler disabled, skipping job", extra={"job": job_type.value})
        return ProcessorResult(success=True, message="Scheduler disabled")

    handler = JOB_HANDLERS[job_type]
    started = time.monotonic()
    result = handler(scheduler, job)
    duration_ms = int((time.monotonic() - started) * 1000)

    log = logger.info if result.success else logger.error
    log(
        f"Job {job_type.value} finished: {result.message}",
        extra={
            "job": job_type.value,
            "triggered_by": JobTrigger(job.triggered_by).value,
            "success": result.success,
            "processed": result.processed,
            "skipped": result.skipped,
            "duration_ms": duration_ms,
        },
    )
    return result


def run_win_streak_check(scheduler: NotificationSchedulerService, user_id: int) -> ProcessorResult:
    """Entry point for match settlement: check the user's streak milestone."""
    return run_job(
        NotificationJobData(
            job_type=NotificationJobType.WIN_STREAK_CHECK,
            triggered_by=JobTrigger.SETTLEMENT,
            user_id=user_id,
        ),
        scheduler,
    )
