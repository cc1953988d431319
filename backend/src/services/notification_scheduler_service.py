"""
Notification scheduler processors.

Each processor selects candidate recipients for one kind of scheduled
notification and hands one NotificationRequest per recipient to the
gatekeeper. User scans are keyset-paginated in pages of batch_limit, so a
single run reaches every candidate. Processors never raise:

- a failed candidate query returns success=False
- a failure for one recipient is logged and counted as skipped
- processed counts recipients handed to the gatekeeper, whatever the outcome

Dedupe keys are chosen so that overlapping or repeated runs are idempotent.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Iterator, List, Optional, Set, Tuple

from sqlalchemy import and_, false, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from backend.src.models.leaderboard import (
    Leaderboard,
    LeaderboardEntry,
    LeaderboardStatus,
    LeaderboardTimeframe,
)
from backend.src.models.match import Match, MatchStatus
from backend.src.models.notification_preference import NotificationPreference
from backend.src.models.notification_send_log import NotificationSendLog, SendLogStatus
from backend.src.models.slip import Slip, SlipPick, SlipStatus
from backend.src.models.sports_event import EventStatus, SportsEvent
from backend.src.models.user import User, UserStatus
from backend.src.services.notification_categories import NotificationCategory, get_category_config
from backend.src.services.notification_preference_service import build_preferences
from backend.src.services.notification_service import NotificationRequest, NotificationService
from backend.src.utils.logging_config import get_logger
from backend.src.utils.timezone_utils import (
    DEFAULT_TIMEZONE,
    get_iso_week,
    get_local_date,
    get_local_day_of_week,
    is_local_hour_match,
    local_day_bounds_utc,
    to_naive_utc,
)


logger = get_logger("scheduler")


# ============================================================================
# Constants
# ============================================================================

GAME_REMINDER_WINDOW_START = timedelta(minutes=60)
GAME_REMINDER_WINDOW_END = timedelta(minutes=120)
GAME_REMINDER_SLIP_STATUSES = (SlipStatus.PENDING.value, SlipStatus.ACTIVE.value)

SLIP_EXPIRY_THRESHOLD = timedelta(minutes=20)
SLIP_EXPIRY_MATCH_STATUSES = (MatchStatus.MATCHED.value, MatchStatus.LOCKED.value)

INACTIVITY_48H = timedelta(hours=48)
INACTIVITY_7D = timedelta(days=7)

WIN_STREAK_MILESTONES = (3, 5, 10)

LEADERBOARD_TARGET_RANK = 10
LEADERBOARD_PROXIMITY_POINTS = 50
LEADERBOARD_SCAN_LIMIT = 500

RECEIPT_BATCH_SIZE = 250
RECEIPT_LOOKBACK = timedelta(hours=24)


@dataclass
class ProcessorResult:
    """
    Summary of one processor run.

    Attributes:
        success: False only when the candidate query itself failed
        processed: Recipients handed to the gatekeeper
        skipped: Candidates not handed over (no data, not due, errors)
        message: Human-readable summary
    """
    success: bool
    processed: int = 0
    skipped: int = 0
    message: str = ""


class NotificationSchedulerService:
    """
    Scheduled notification processors.

    Each process_* method is one job type. All accept an optional `now`
    so runs are reproducible in tests.
    """

    def __init__(
        self,
        db: Session,
        notification_service: NotificationService,
        batch_limit: int = 1000,
        inactivity_enabled: bool = False,
        default_timezone: str = DEFAULT_TIMEZONE,
    ):
        """
        Initialize the scheduler.

        Args:
            db: SQLAlchemy session for candidate queries
            notification_service: Gatekeeper used for every send
            batch_limit: Page size for candidate scans (event and match scans are capped at it)
            inactivity_enabled: Feature switch for the inactivity job
            default_timezone: Fallback zone for users without a valid one
        """
        self.db = db
        self.notification_service = notification_service
        self.batch_limit = batch_limit
        self.inactivity_enabled = inactivity_enabled
        self.default_timezone = default_timezone

    # ========================================================================
    # Helpers
    # ========================================================================

    @staticmethod
    def _now(now: Optional[datetime]) -> datetime:
        return now or datetime.now(timezone.utc)

    def _scan_failed(self, label: str, error: Exception) -> ProcessorResult:
        self.db.rollback()
        logger.error(f"{label}: candidate scan failed: {error}", extra={"job": label})
        return ProcessorResult(success=False, message=f"Scan failed: {error}")

    def _send_each(
        self,
        label: str,
        recipients: Iterable,
        build: Callable[..., Optional[NotificationRequest]],
        now: datetime,
    ) -> Tuple[int, int]:
        """
        Hand one request per recipient to the gatekeeper.

        build returns None to skip a recipient. Exceptions raised while
        building or sending for one recipient are logged and counted as
        skipped.

        Returns:
            (processed, skipped)
        """
        processed = 0
        skipped = 0
        for recipient in recipients:
            try:
                request = build(recipient)
                if request is None:
                    skipped += 1
                    continue
                self.notification_service.send(request, now=now)
                processed += 1
            except Exception as e:
                self.db.rollback()
                skipped += 1
                logger.warning(
                    f"{label}: failed for recipient: {e}",
                    extra={"job": label, "recipient": repr(recipient)},
                )
        return processed, skipped

    def _opted_in_users(self, category: NotificationCategory) -> Query:
        """
        Active users whose master switch and category toggle are on.

        Users without a preference row have every toggle on.
        """
        toggle = getattr(NotificationPreference, get_category_config(category).preference_field)
        return (
            self.db.query(User, NotificationPreference)
            .outerjoin(NotificationPreference, NotificationPreference.user_id == User.id)
            .filter(
                User.status == UserStatus.ACTIVE,
                or_(
                    NotificationPreference.id.is_(None),
                    and_(
                        NotificationPreference.all_notifications_enabled.is_(True),
                        toggle.is_(True),
                    ),
                ),
            )
            .order_by(User.id)
        )

    def _user_pages(self, query: Query) -> Iterator[list]:
        """
        Keyset-paginate a query whose rows lead with User, ordered by User.id.

        Each page resumes after the last user id of the previous one and the
        scan stops at the first short page, so one run visits every candidate.
        """
        last_id = 0
        while True:
            page = query.filter(User.id > last_id).limit(self.batch_limit).all()
            if not page:
                return
            last_id = page[-1][0].id
            yield page
            if len(page) < self.batch_limit:
                return

    def _send_paged(
        self,
        label: str,
        query: Query,
        build: Callable[..., Optional[NotificationRequest]],
        now: datetime,
        exclude: Optional[Set[int]] = None,
    ) -> Tuple[int, int]:
        """
        Run _send_each over every page of a user query.

        Rows for user ids in exclude are dropped without being counted.

        Raises:
            SQLAlchemyError: If fetching a page fails
        """
        processed = 0
        skipped = 0
        for page in self._user_pages(query):
            if exclude:
                page = [row for row in page if row[0].id not in exclude]
            sent, missed = self._send_each(label, page, build, now)
            processed += sent
            skipped += missed
        return processed, skipped

    @staticmethod
    def _summary(label: str, processed: int, skipped: int, noun: str) -> ProcessorResult:
        logger.info(
            f"{label} complete",
            extra={"job": label, "processed": processed, "skipped": skipped},
        )
        return ProcessorResult(
            success=True,
            processed=processed,
            skipped=skipped,
            message=f"Sent {processed} {noun}",
        )

    # ========================================================================
    # Game reminders
    # ========================================================================

    def process_game_reminders(self, now: Optional[datetime] = None) -> ProcessorResult:
        """
        Remind users about events starting in 60 to 120 minutes.

        Recipients are the distinct owners of PENDING or ACTIVE slips with a
        pick on the event. An event nobody picked counts as one skipped.
        """
        label = "game-reminders"
        now = self._now(now)
        naive_now = to_naive_utc(now)

        try:
            events = (
                self.db.query(SportsEvent)
                .filter(
                    SportsEvent.status == EventStatus.SCHEDULED.value,
                    SportsEvent.scheduled_at >= naive_now + GAME_REMINDER_WINDOW_START,
                    SportsEvent.scheduled_at <= naive_now + GAME_REMINDER_WINDOW_END,
                )
                .order_by(SportsEvent.scheduled_at)
                .limit(self.batch_limit)
                .all()
            )
        except SQLAlchemyError as e:
            return self._scan_failed(label, e)

        processed = 0
        skipped = 0
        for event in events:
            try:
                user_ids = [
                    row[0]
                    for row in (
                        self.db.query(Slip.user_id)
                        .join(SlipPick, SlipPick.slip_id == Slip.id)
                        .filter(
                            SlipPick.event_id == event.id,
                            Slip.status.in_(GAME_REMINDER_SLIP_STATUSES),
                        )
                        .distinct()
                        .limit(self.batch_limit)
                        .all()
                    )
                ]
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.warning(
                    f"{label}: participant lookup failed: {e}",
                    extra={"job": label, "event_id": event.id},
                )
                skipped += 1
                continue

            if not user_ids:
                skipped += 1
                continue

            minutes_until = (event.scheduled_at - naive_now).total_seconds() / 60
            hours_remaining = max(1, round(minutes_until / 60))

            def build(user_id: int, event_id: int = event.id) -> NotificationRequest:
                return NotificationRequest(
                    user_id=user_id,
                    category=NotificationCategory.GAME_REMINDER,
                    template_id="game_reminder.upcoming",
                    variables={"gameCount": 1, "hoursRemaining": hours_remaining},
                    entity_id=str(event_id),
                    dedupe_key=f"game-reminder:{user_id}:{event_id}",
                )

            sent, missed = self._send_each(label, user_ids, build, now)
            processed += sent
            skipped += missed

        return self._summary(label, processed, skipped, "game reminder(s)")

    # ========================================================================
    # Slip expiring
    # ========================================================================

    def process_slip_expiring(self, now: Optional[datetime] = None) -> ProcessorResult:
        """
        Warn both sides of matched/locked matches whose slip has an event
        starting within 20 minutes.

        Each participant is notified separately with their own slip id.
        """
        label = "slip-expiring"
        now = self._now(now)
        naive_now = to_naive_utc(now)

        expiring_slip_ids = (
            select(SlipPick.slip_id)
            .join(SportsEvent, SportsEvent.id == SlipPick.event_id)
            .where(
                SportsEvent.status == EventStatus.SCHEDULED.value,
                SportsEvent.scheduled_at >= naive_now,
                SportsEvent.scheduled_at <= naive_now + SLIP_EXPIRY_THRESHOLD,
            )
        )

        try:
            matches = (
                self.db.query(Match)
                .filter(
                    Match.status.in_(SLIP_EXPIRY_MATCH_STATUSES),
                    or_(
                        Match.creator_slip_id.in_(expiring_slip_ids),
                        Match.opponent_slip_id.in_(expiring_slip_ids),
                    ),
                )
                .order_by(Match.id)
                .limit(self.batch_limit)
                .all()
            )
        except SQLAlchemyError as e:
            return self._scan_failed(label, e)

        participants = []
        for match in matches:
            participants.append((match, match.creator_id, match.creator_slip_id))
            # Open matches have no opponent yet
            if match.opponent_id is not None:
                participants.append((match, match.opponent_id, match.opponent_slip_id))

        def build(participant) -> Optional[NotificationRequest]:
            match, user_id, slip_id = participant
            if user_id is None or slip_id is None:
                return None

            if match.slip_deadline_at is not None:
                seconds_left = (match.slip_deadline_at - naive_now).total_seconds()
                minutes_remaining = max(0, math.floor(seconds_left / 60))
            else:
                minutes_remaining = int(SLIP_EXPIRY_THRESHOLD.total_seconds() // 60)

            return NotificationRequest(
                user_id=user_id,
                category=NotificationCategory.SLIP_EXPIRING,
                template_id="slip_expiring.warning",
                variables={"minutesRemaining": minutes_remaining},
                entity_id=str(slip_id),
                dedupe_key=f"slip-expiring:{slip_id}",
                metadata={"match_id": match.id},
            )

        processed, skipped = self._send_each(label, participants, build, now)
        return self._summary(label, processed, skipped, "slip expiry warning(s)")

    # ========================================================================
    # Daily digest
    # ========================================================================

    def process_daily_digest(self, now: Optional[datetime] = None) -> ProcessorResult:
        """
        Send the evening digest to users whose local hour matches their
        digest time, counting events over their local calendar day.

        Users not at their digest hour, or with no events today, are skipped.
        """
        label = "daily-digest"
        now = self._now(now)

        def build(row) -> Optional[NotificationRequest]:
            user, preference = row
            prefs = build_preferences(user, preference, self.default_timezone)
            if not is_local_hour_match(prefs.timezone, prefs.digest_time_local, now):
                return None

            day_start, day_end = local_day_bounds_utc(prefs.timezone, now)
            sport_counts = (
                self.db.query(SportsEvent.sport, func.count(SportsEvent.id))
                .filter(
                    SportsEvent.status == EventStatus.SCHEDULED.value,
                    SportsEvent.scheduled_at >= day_start,
                    SportsEvent.scheduled_at < day_end,
                )
                .group_by(SportsEvent.sport)
                .all()
            )
            game_count = sum(count for _, count in sport_counts)
            if game_count == 0:
                return None

            sports = [sport for sport, _ in sport_counts if sport]
            local_date = get_local_date(prefs.timezone, now)
            return NotificationRequest(
                user_id=user.id,
                category=NotificationCategory.DAILY_DIGEST,
                template_id="daily_digest.evening",
                variables={
                    "gameCount": game_count,
                    "sport": sports[0] if len(sports) == 1 else "sports",
                },
                dedupe_key=f"daily-digest:{user.id}:{local_date}",
            )

        try:
            processed, skipped = self._send_paged(
                label, self._opted_in_users(NotificationCategory.DAILY_DIGEST), build, now
            )
        except SQLAlchemyError as e:
            return self._scan_failed(label, e)
        return self._summary(label, processed, skipped, "daily digest(s)")

    # ========================================================================
    # Weekly recap
    # ========================================================================

    def process_weekly_recap(self, now: Optional[datetime] = None) -> ProcessorResult:
        """
        Send the weekly recap on the user's local recap day at their digest
        hour, with wins, losses and rank movement from the active weekly
        leaderboard.
        """
        label = "weekly-recap"
        now = self._now(now)

        def build(row) -> Optional[NotificationRequest]:
            user, preference, entry = row
            prefs = build_preferences(user, preference, self.default_timezone)
            if get_local_day_of_week(prefs.timezone, now) != prefs.recap_day_of_week:
                return None
            if not is_local_hour_match(prefs.timezone, prefs.digest_time_local, now):
                return None

            wins = entry.wins if entry else 0
            losses = entry.losses if entry else 0
            rank = entry.rank if entry else 0
            previous_rank = entry.previous_rank if entry and entry.previous_rank is not None else rank

            return NotificationRequest(
                user_id=user.id,
                category=NotificationCategory.WEEKLY_RECAP,
                template_id="weekly_recap.summary",
                variables={
                    "wins": wins,
                    "losses": losses,
                    "spotsClimbed": max(0, previous_rank - rank),
                },
                dedupe_key=f"weekly-recap:{user.id}:{get_iso_week(prefs.timezone, now)}",
            )

        try:
            board = self._active_weekly_leaderboard()
            # Entry on the active board, joined into the candidate rows
            entry_on = (
                and_(
                    LeaderboardEntry.user_id == User.id,
                    LeaderboardEntry.leaderboard_id == board.id,
                )
                if board is not None
                else false()
            )
            query = (
                self._opted_in_users(NotificationCategory.WEEKLY_RECAP)
                .add_entity(LeaderboardEntry)
                .outerjoin(LeaderboardEntry, entry_on)
            )
            processed, skipped = self._send_paged(label, query, build, now)
        except SQLAlchemyError as e:
            return self._scan_failed(label, e)
        return self._summary(label, processed, skipped, "weekly recap(s)")

    def _active_weekly_leaderboard(self) -> Optional[Leaderboard]:
        return (
            self.db.query(Leaderboard)
            .filter(
                Leaderboard.timeframe == LeaderboardTimeframe.WEEKLY.value,
                Leaderboard.status == LeaderboardStatus.ACTIVE.value,
            )
            .order_by(Leaderboard.created_at.desc(), Leaderboard.id.desc())
            .first()
        )

    # ========================================================================
    # Inactivity
    # ========================================================================

    def process_inactivity_check(self, now: Optional[datetime] = None) -> ProcessorResult:
        """
        Re-engage inactive users.

        The 7-day cohort runs first; the 48-hour cohort then covers users
        last active in (now - 7d, now - 48h] that were not handled in this
        run, so nobody gets both messages.
        """
        label = "inactivity"
        if not self.inactivity_enabled:
            logger.debug("Inactivity notifications disabled", extra={"job": label})
            return ProcessorResult(success=True, message="Inactivity notifications disabled")

        now = self._now(now)
        naive_now = to_naive_utc(now)
        cutoff_48h = naive_now - INACTIVITY_48H
        cutoff_7d = naive_now - INACTIVITY_7D

        handled: Set[int] = set()

        def build_7d(row) -> NotificationRequest:
            user = row[0]
            handled.add(user.id)
            return NotificationRequest(
                user_id=user.id,
                category=NotificationCategory.INACTIVITY,
                template_id="inactivity.7d",
                dedupe_key=f"inactivity:{user.id}:7d",
            )

        def build_48h(row) -> NotificationRequest:
            user = row[0]
            return NotificationRequest(
                user_id=user.id,
                category=NotificationCategory.INACTIVITY,
                template_id="inactivity.48h",
                dedupe_key=f"inactivity:{user.id}:48h",
            )

        try:
            sent_7d, skipped = self._send_paged(
                label,
                self._opted_in_users(NotificationCategory.INACTIVITY)
                .filter(User.last_active_at <= cutoff_7d),
                build_7d,
                now,
            )
            sent_48h, missed = self._send_paged(
                label,
                self._opted_in_users(NotificationCategory.INACTIVITY)
                .filter(
                    User.last_active_at > cutoff_7d,
                    User.last_active_at <= cutoff_48h,
                ),
                build_48h,
                now,
                exclude=handled,
            )
        except SQLAlchemyError as e:
            return self._scan_failed(label, e)

        processed = sent_7d + sent_48h
        skipped += missed

        logger.info(
            f"{label} complete",
            extra={
                "job": label,
                "processed": processed,
                "skipped": skipped,
                "users_7d": sent_7d,
                "users_48h": sent_48h,
            },
        )
        return ProcessorResult(
            success=True,
            processed=processed,
            skipped=skipped,
            message=(
                f"Sent {processed} inactivity notification(s) "
                f"(7d: {sent_7d}, 48h: {sent_48h})"
            ),
        )

    # ========================================================================
    # Win streak
    # ========================================================================

    def process_win_streak_check(
        self,
        user_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> ProcessorResult:
        """
        Celebrate a win-streak milestone (3, 5 or 10) after settlement.

        The dedupe key carries the streak count, so a retried job never
        repeats the same milestone.

        Args:
            user_id: User whose match just settled
            now: Decision instant

        Returns:
            processed=1 when a milestone was handed to the gatekeeper,
            otherwise skipped=1
        """
        label = "win-streak"
        if user_id is None:
            logger.warning("Win-streak check invoked without user id", extra={"job": label})
            return ProcessorResult(success=True, skipped=1, message="No user id provided")

        now = self._now(now)
        try:
            user = self.db.query(User).filter(User.id == user_id).first()
        except SQLAlchemyError as e:
            return self._scan_failed(label, e)

        if user is None or user.status != UserStatus.ACTIVE:
            return ProcessorResult(success=True, skipped=1, message="User not found or inactive")

        streak = user.current_streak or 0
        if streak not in WIN_STREAK_MILESTONES:
            logger.debug(
                "Streak is not a milestone",
                extra={"job": label, "user_id": user_id, "streak": streak},
            )
            return ProcessorResult(success=True, skipped=1, message=f"Streak {streak} is not a milestone")

        outcome = self.notification_service.send(
            NotificationRequest(
                user_id=user.id,
                category=NotificationCategory.WIN_STREAK,
                template_id="win_streak.milestone",
                variables={"streakCount": streak},
                dedupe_key=f"win-streak:{user.id}:{streak}",
            ),
            now=now,
        )
        logger.info(
            "Win-streak milestone handled",
            extra={"job": label, "user_id": user_id, "streak": streak, "outcome": outcome.value},
        )
        return ProcessorResult(
            success=True,
            processed=1,
            message=f"Win-streak notification for streak {streak}: {outcome.value}",
        )

    # ========================================================================
    # Leaderboard proximity
    # ========================================================================

    def process_leaderboard_proximity(self, now: Optional[datetime] = None) -> ProcessorResult:
        """
        Nudge users just outside the top 10 of the active weekly board.

        Candidates rank below 10 and are within 50 points of the score held
        at rank 10.
        """
        label = "leaderboard-proximity"
        now = self._now(now)

        try:
            board = self._active_weekly_leaderboard()
            if board is None:
                return ProcessorResult(success=True, message="No active weekly leaderboard")

            boundary = (
                self.db.query(LeaderboardEntry)
                .filter(
                    LeaderboardEntry.leaderboard_id == board.id,
                    LeaderboardEntry.rank == LEADERBOARD_TARGET_RANK,
                )
                .first()
            )
            if boundary is None:
                return ProcessorResult(
                    success=True,
                    message=f"Leaderboard has no rank {LEADERBOARD_TARGET_RANK} entry",
                )

            entries: List[LeaderboardEntry] = (
                self.db.query(LeaderboardEntry)
                .join(User, User.id == LeaderboardEntry.user_id)
                .filter(
                    LeaderboardEntry.leaderboard_id == board.id,
                    LeaderboardEntry.rank > LEADERBOARD_TARGET_RANK,
                    LeaderboardEntry.score >= boundary.score - LEADERBOARD_PROXIMITY_POINTS,
                    User.status == UserStatus.ACTIVE,
                )
                .order_by(LeaderboardEntry.rank)
                .limit(LEADERBOARD_SCAN_LIMIT)
                .all()
            )
        except SQLAlchemyError as e:
            return self._scan_failed(label, e)

        def build(entry: LeaderboardEntry) -> NotificationRequest:
            points_away = max(1, math.ceil(boundary.score - entry.score))
            return NotificationRequest(
                user_id=entry.user_id,
                category=NotificationCategory.LEADERBOARD,
                template_id="leaderboard.proximity",
                variables={"pointsAway": points_away, "targetRank": LEADERBOARD_TARGET_RANK},
                entity_id=str(board.id),
                dedupe_key=f"leaderboard-proximity:{entry.user_id}:{board.id}",
            )

        processed, skipped = self._send_each(label, entries, build, now)
        return self._summary(label, processed, skipped, "leaderboard nudge(s)")

    # ========================================================================
    # Receipts
    # ========================================================================

    def process_expo_receipts(self, now: Optional[datetime] = None) -> ProcessorResult:
        """
        Reconcile receipts for SENT tickets from the last 24 hours, oldest
        first, at most 250 per run.
        """
        label = "expo-receipts"
        naive_now = to_naive_utc(self._now(now))

        try:
            ticket_ids = [
                row[0]
                for row in (
                    self.db.query(NotificationSendLog.expo_ticket_id)
                    .filter(
                        NotificationSendLog.status == SendLogStatus.SENT,
                        NotificationSendLog.expo_ticket_id.isnot(None),
                        NotificationSendLog.created_at >= naive_now - RECEIPT_LOOKBACK,
                    )
                    .order_by(NotificationSendLog.created_at.asc(), NotificationSendLog.id.asc())
                    .limit(RECEIPT_BATCH_SIZE)
                    .all()
                )
            ]
        except SQLAlchemyError as e:
            return self._scan_failed(label, e)

        if not ticket_ids:
            return ProcessorResult(success=True, message="No pending receipts")

        try:
            summary = self.notification_service.push_service.check_receipts(ticket_ids)
        except Exception as e:
            self.db.rollback()
            logger.exception(f"{label}: reconciliation failed: {e}", extra={"job": label})
            return ProcessorResult(success=False, message=f"Reconciliation failed: {e}")

        return ProcessorResult(
            success=True,
            processed=summary.checked,
            skipped=summary.pending,
            message=(
                f"Checked {summary.checked} receipt(s): {summary.delivered} delivered, "
                f"{summary.failed} failed, {summary.tokens_deactivated} token(s) deactivated"
            ),
        )

    # ========================================================================
    # Deferred redelivery
    # ========================================================================

    def process_deferred_notifications(self, now: Optional[datetime] = None) -> ProcessorResult:
        """
        Redeliver quiet-hours suppressions whose window has ended.

        Not implemented yet: suppressed rows carry redeliver_after, but no
        redelivery is attempted.
        """
        logger.debug("Deferred redelivery is not implemented", extra={"job": "deferred"})
        return ProcessorResult(success=True, message="Deferred redelivery not implemented")
