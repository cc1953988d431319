"""
Unit tests for NotificationSchedulerService.

Each processor is run against an in-memory database with the gatekeeper
and a mocked Expo client wired in. Assertions are made on processor
results and on the send-log rows the gatekeeper writes.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import httpx
import pytest
from sqlalchemy.exc import SQLAlchemyError

from backend.src.models import (
    Leaderboard,
    LeaderboardEntry,
    LeaderboardStatus,
    LeaderboardTimeframe,
    Match,
    MatchStatus,
    NotificationSendLog,
    SendLogStatus,
    Slip,
    SlipPick,
    SlipStatus,
    SportsEvent,
    UserStatus,
)
from backend.src.services.notification_scheduler_service import NotificationSchedulerService


# Wednesday, 12:00 in New York
NOON = datetime(2025, 1, 15, 17, 0, tzinfo=timezone.utc)
NAIVE_NOON = datetime(2025, 1, 15, 17, 0)
# Wednesday, 18:00 in New York (default digest hour)
EVENING = datetime(2025, 1, 15, 23, 0, tzinfo=timezone.utc)
# Monday, 18:00 in New York
MONDAY_EVENING = datetime(2025, 1, 13, 23, 0, tzinfo=timezone.utc)


def all_logs(db):
    return db.query(NotificationSendLog).order_by(NotificationSendLog.id).all()


# ============================================================================
# Local Fixtures
# ============================================================================

@pytest.fixture
def create_event(test_db_session):
    """Factory for sports events."""
    def _create(scheduled_at, sport="NBA", status="SCHEDULED"):
        event = SportsEvent(
            sport=sport,
            home_team_name="Home",
            away_team_name="Away",
            status=status,
            scheduled_at=scheduled_at,
        )
        test_db_session.add(event)
        test_db_session.commit()
        test_db_session.refresh(event)
        return event
    return _create


@pytest.fixture
def create_slip(test_db_session):
    """Factory for slips with picks on the given events."""
    def _create(user, events=(), status=SlipStatus.PENDING.value):
        slip = Slip(user_id=user.id, status=status)
        test_db_session.add(slip)
        test_db_session.flush()
        for event in events:
            test_db_session.add(SlipPick(slip_id=slip.id, event_id=event.id))
        test_db_session.commit()
        test_db_session.refresh(slip)
        return slip
    return _create


@pytest.fixture
def weekly_board(test_db_session):
    board = Leaderboard(
        timeframe=LeaderboardTimeframe.WEEKLY.value,
        status=LeaderboardStatus.ACTIVE.value,
    )
    test_db_session.add(board)
    test_db_session.commit()
    test_db_session.refresh(board)
    return board


@pytest.fixture
def create_entry(test_db_session, weekly_board):
    """Factory for leaderboard entries on the active weekly board."""
    def _create(user, rank, score, wins=0, losses=0, previous_rank=None):
        entry = LeaderboardEntry(
            leaderboard_id=weekly_board.id,
            user_id=user.id,
            rank=rank,
            previous_rank=previous_rank,
            score=score,
            wins=wins,
            losses=losses,
        )
        test_db_session.add(entry)
        test_db_session.commit()
        return entry
    return _create


# ============================================================================
# Game reminders
# ============================================================================

class TestGameReminders:
    """Tests for process_game_reminders."""

    def test_reminds_slip_owners(
        self, scheduler, reachable_user, create_event, create_slip, test_db_session
    ):
        event = create_event(NAIVE_NOON + timedelta(minutes=100))
        create_slip(reachable_user, [event])
        # Second slip on the same event does not duplicate the recipient
        create_slip(reachable_user, [event], status=SlipStatus.ACTIVE.value)

        result = scheduler.process_game_reminders(now=NOON)

        assert result.success
        assert result.processed == 1
        log = all_logs(test_db_session)[0]
        assert log.dedupe_key == f"game-reminder:{reachable_user.id}:{event.id}"
        assert log.body == "1 games tip off in 2 hours. Build your slip before lock"
        assert log.entity_id == str(event.id)

    def test_window_bounds(self, scheduler, reachable_user, create_event, create_slip):
        too_soon = create_event(NAIVE_NOON + timedelta(minutes=30))
        too_late = create_event(NAIVE_NOON + timedelta(minutes=150))
        create_slip(reachable_user, [too_soon, too_late])

        result = scheduler.process_game_reminders(now=NOON)

        assert (result.processed, result.skipped) == (0, 0)

    def test_event_without_participants_skipped(self, scheduler, create_event, create_user, create_slip):
        event = create_event(NAIVE_NOON + timedelta(minutes=90))
        create_slip(create_user(), [event], status=SlipStatus.DRAFT.value)

        result = scheduler.process_game_reminders(now=NOON)

        assert (result.processed, result.skipped) == (0, 1)

    def test_rerun_is_deduplicated(
        self, scheduler, reachable_user, create_event, create_slip, test_db_session
    ):
        event = create_event(NAIVE_NOON + timedelta(minutes=90))
        create_slip(reachable_user, [event])

        scheduler.process_game_reminders(now=NOON)
        scheduler.process_game_reminders(now=NOON + timedelta(minutes=15))

        statuses = [log.status for log in all_logs(test_db_session)]
        assert statuses == [SendLogStatus.SENT, SendLogStatus.SUPPRESSED]

    def test_scan_failure(self, scheduler):
        with patch.object(scheduler.db, "query", side_effect=SQLAlchemyError("db down")):
            result = scheduler.process_game_reminders(now=NOON)
        assert result.success is False


# ============================================================================
# Slip expiring
# ============================================================================

class TestSlipExpiring:
    """Tests for process_slip_expiring."""

    def test_warns_both_participants(
        self, scheduler, create_user, create_device_token, create_event, create_slip, test_db_session
    ):
        creator = create_user()
        opponent = create_user()
        create_device_token(creator)
        create_device_token(opponent)
        event = create_event(NAIVE_NOON + timedelta(minutes=10))
        creator_slip = create_slip(creator, [event])
        opponent_slip = create_slip(opponent)
        match = Match(
            creator_id=creator.id,
            opponent_id=opponent.id,
            creator_slip_id=creator_slip.id,
            opponent_slip_id=opponent_slip.id,
            status=MatchStatus.MATCHED.value,
            slip_deadline_at=NAIVE_NOON + timedelta(minutes=10, seconds=30),
        )
        test_db_session.add(match)
        test_db_session.commit()

        result = scheduler.process_slip_expiring(now=NOON)

        assert (result.processed, result.skipped) == (2, 0)
        logs = all_logs(test_db_session)
        assert {log.dedupe_key for log in logs} == {
            f"slip-expiring:{creator_slip.id}",
            f"slip-expiring:{opponent_slip.id}",
        }
        assert all(log.metadata_json == {"match_id": match.id} for log in logs)
        assert logs[0].body == "Your slip locks in 10 minutes. Finalize or lose your entry"

    def test_open_match_warns_creator_only(
        self, scheduler, reachable_user, create_event, create_slip, test_db_session
    ):
        event = create_event(NAIVE_NOON + timedelta(minutes=5))
        slip = create_slip(reachable_user, [event])
        test_db_session.add(Match(
            creator_id=reachable_user.id,
            creator_slip_id=slip.id,
            status=MatchStatus.LOCKED.value,
        ))
        test_db_session.commit()

        result = scheduler.process_slip_expiring(now=NOON)

        assert (result.processed, result.skipped) == (1, 0)
        # No deadline recorded: the threshold is used
        assert all_logs(test_db_session)[0].body.startswith("Your slip locks in 20 minutes")

    def test_opponent_without_slip_skipped(
        self, scheduler, reachable_user, create_user, create_event, create_slip, test_db_session
    ):
        event = create_event(NAIVE_NOON + timedelta(minutes=5))
        slip = create_slip(reachable_user, [event])
        test_db_session.add(Match(
            creator_id=reachable_user.id,
            opponent_id=create_user().id,
            creator_slip_id=slip.id,
            status=MatchStatus.MATCHED.value,
        ))
        test_db_session.commit()

        result = scheduler.process_slip_expiring(now=NOON)

        assert (result.processed, result.skipped) == (1, 1)

    def test_ignores_pending_and_distant(
        self, scheduler, reachable_user, create_event, create_slip, test_db_session
    ):
        soon = create_event(NAIVE_NOON + timedelta(minutes=5))
        later = create_event(NAIVE_NOON + timedelta(hours=3))
        test_db_session.add_all([
            Match(
                creator_id=reachable_user.id,
                creator_slip_id=create_slip(reachable_user, [soon]).id,
                status=MatchStatus.PENDING.value,
            ),
            Match(
                creator_id=reachable_user.id,
                creator_slip_id=create_slip(reachable_user, [later]).id,
                status=MatchStatus.MATCHED.value,
            ),
        ])
        test_db_session.commit()

        result = scheduler.process_slip_expiring(now=NOON)

        assert (result.processed, result.skipped) == (0, 0)


# ============================================================================
# Daily digest
# ============================================================================

class TestDailyDigest:
    """Tests for process_daily_digest."""

    def test_sends_at_local_digest_hour(
        self, scheduler, reachable_user, create_event, test_db_session
    ):
        # Both inside the New York calendar day of 2025-01-15
        create_event(datetime(2025, 1, 16, 0, 30))
        create_event(datetime(2025, 1, 16, 1, 0))
        # Next New York day
        create_event(datetime(2025, 1, 16, 6, 0))

        result = scheduler.process_daily_digest(now=EVENING)

        assert result.processed == 1
        log = all_logs(test_db_session)[0]
        assert log.body == "Tonight's slate: 2 NBA games. Your rivals are already building."
        assert log.dedupe_key == f"daily-digest:{reachable_user.id}:2025-01-15"

    def test_mixed_sports(self, scheduler, reachable_user, create_event, test_db_session):
        create_event(datetime(2025, 1, 16, 0, 30), sport="NBA")
        create_event(datetime(2025, 1, 16, 1, 0), sport="NHL")

        scheduler.process_daily_digest(now=EVENING)

        assert all_logs(test_db_session)[0].body.startswith("Tonight's slate: 2 sports games.")

    def test_other_hours_and_empty_days_skipped(
        self, scheduler, reachable_user, create_user, create_event
    ):
        create_user(timezone_name="Europe/London")  # 23:00 local
        create_event(datetime(2025, 1, 16, 0, 30))

        result = scheduler.process_daily_digest(now=EVENING)

        assert (result.processed, result.skipped) == (1, 1)

    def test_no_events_skipped(self, scheduler, reachable_user):
        result = scheduler.process_daily_digest(now=EVENING)
        assert (result.processed, result.skipped) == (0, 1)

    def test_opted_out_users_not_candidates(
        self, scheduler, reachable_user, create_preference, create_event
    ):
        create_preference(reachable_user, daily_digest_enabled=False)
        create_event(datetime(2025, 1, 16, 0, 30))

        result = scheduler.process_daily_digest(now=EVENING)

        assert (result.processed, result.skipped) == (0, 0)

    def test_inactive_users_not_candidates(self, scheduler, create_user, create_event):
        create_user(status=UserStatus.SUSPENDED)
        create_event(datetime(2025, 1, 16, 0, 30))

        result = scheduler.process_daily_digest(now=EVENING)

        assert (result.processed, result.skipped) == (0, 0)

    def test_candidates_beyond_page_size_reached(
        self, test_db_session, notification_service, create_user, create_event
    ):
        users = [create_user() for _ in range(3)]
        create_event(datetime(2025, 1, 16, 0, 30))
        paged = NotificationSchedulerService(test_db_session, notification_service, batch_limit=2)

        result = paged.process_daily_digest(now=EVENING)

        assert (result.processed, result.skipped) == (3, 0)
        assert {log.user_id for log in all_logs(test_db_session)} == {u.id for u in users}

    def test_not_due_users_do_not_exhaust_page(
        self, test_db_session, notification_service, create_user, create_event
    ):
        create_user(timezone_name="Europe/London")
        create_user(timezone_name="Asia/Tokyo")
        due = create_user()
        create_event(datetime(2025, 1, 16, 0, 30))
        paged = NotificationSchedulerService(test_db_session, notification_service, batch_limit=2)

        result = paged.process_daily_digest(now=EVENING)

        assert (result.processed, result.skipped) == (1, 2)
        assert [log.user_id for log in all_logs(test_db_session)] == [due.id]

    def test_scan_failure(self, scheduler):
        with patch.object(scheduler.db, "query", side_effect=SQLAlchemyError("db down")):
            result = scheduler.process_daily_digest(now=EVENING)
        assert result.success is False


# ============================================================================
# Weekly recap
# ============================================================================

class TestWeeklyRecap:
    """Tests for process_weekly_recap."""

    def test_sends_on_recap_day(self, scheduler, reachable_user, create_entry, test_db_session):
        create_entry(reachable_user, rank=3, previous_rank=6, score=120, wins=4, losses=2)

        result = scheduler.process_weekly_recap(now=MONDAY_EVENING)

        assert result.processed == 1
        log = all_logs(test_db_session)[0]
        assert log.body == "Last week you went 4-2. You climbed 3 spots on the leaderboard."
        assert log.dedupe_key == f"weekly-recap:{reachable_user.id}:2025-W03"

    def test_without_entry_sends_zeros(self, scheduler, reachable_user, test_db_session):
        scheduler.process_weekly_recap(now=MONDAY_EVENING)
        assert all_logs(test_db_session)[0].body.startswith("Last week you went 0-0.")

    def test_other_days_skipped(self, scheduler, reachable_user):
        result = scheduler.process_weekly_recap(now=EVENING)
        assert (result.processed, result.skipped) == (0, 1)

    def test_custom_recap_day(self, scheduler, reachable_user, create_preference):
        create_preference(reachable_user, recap_day_of_week=3)
        result = scheduler.process_weekly_recap(now=EVENING)
        assert result.processed == 1

    def test_entries_joined_across_pages(
        self, test_db_session, notification_service, create_user, create_entry
    ):
        first = create_user()
        second = create_user()
        third = create_user()
        create_entry(first, rank=1, score=300, wins=5, losses=0)
        create_entry(third, rank=2, score=200, wins=3, losses=1, previous_rank=4)
        paged = NotificationSchedulerService(test_db_session, notification_service, batch_limit=2)

        result = paged.process_weekly_recap(now=MONDAY_EVENING)

        assert result.processed == 3
        bodies = {log.user_id: log.body for log in all_logs(test_db_session)}
        assert bodies[first.id].startswith("Last week you went 5-0.")
        assert bodies[second.id].startswith("Last week you went 0-0.")
        assert bodies[third.id] == "Last week you went 3-1. You climbed 2 spots on the leaderboard."

    def test_entries_on_other_boards_ignored(self, scheduler, reachable_user, test_db_session):
        old_board = Leaderboard(
            timeframe=LeaderboardTimeframe.WEEKLY.value,
            status=LeaderboardStatus.CLOSED.value,
        )
        test_db_session.add(old_board)
        test_db_session.flush()
        test_db_session.add(LeaderboardEntry(
            leaderboard_id=old_board.id, user_id=reachable_user.id, rank=1, score=10, wins=9, losses=0,
        ))
        test_db_session.commit()

        scheduler.process_weekly_recap(now=MONDAY_EVENING)

        assert all_logs(test_db_session)[0].body.startswith("Last week you went 0-0.")


# ============================================================================
# Inactivity
# ============================================================================

class TestInactivity:
    """Tests for process_inactivity_check."""

    def test_cohorts_do_not_overlap(self, scheduler, create_user, test_db_session):
        week_gone = create_user(last_active_at=NAIVE_NOON - timedelta(days=9))
        two_days = create_user(last_active_at=NAIVE_NOON - timedelta(hours=50))
        create_user(last_active_at=NAIVE_NOON - timedelta(hours=1))
        create_user(last_active_at=None)

        result = scheduler.process_inactivity_check(now=NOON)

        assert result.processed == 2
        templates = {log.user_id: log.template_id for log in all_logs(test_db_session)}
        assert templates == {week_gone.id: "inactivity.7d", two_days.id: "inactivity.48h"}

    def test_both_cohorts_paginated(self, test_db_session, notification_service, create_user):
        week_gone = [create_user(last_active_at=NAIVE_NOON - timedelta(days=8)) for _ in range(3)]
        two_days = [create_user(last_active_at=NAIVE_NOON - timedelta(hours=60)) for _ in range(2)]
        paged = NotificationSchedulerService(
            test_db_session, notification_service, batch_limit=2, inactivity_enabled=True
        )

        result = paged.process_inactivity_check(now=NOON)

        assert (result.processed, result.skipped) == (5, 0)
        assert result.message == "Sent 5 inactivity notification(s) (7d: 3, 48h: 2)"
        templates = {log.user_id: log.template_id for log in all_logs(test_db_session)}
        assert templates == {
            **{u.id: "inactivity.7d" for u in week_gone},
            **{u.id: "inactivity.48h" for u in two_days},
        }

    def test_disabled(self, test_db_session, notification_service, create_user):
        create_user(last_active_at=NAIVE_NOON - timedelta(days=9))
        scheduler = NotificationSchedulerService(test_db_session, notification_service)

        result = scheduler.process_inactivity_check(now=NOON)

        assert result.success
        assert result.processed == 0
        assert result.message == "Inactivity notifications disabled"

    def test_recipient_failure_counted_as_skipped(self, scheduler, create_user):
        create_user(last_active_at=NAIVE_NOON - timedelta(days=9))
        create_user(last_active_at=NAIVE_NOON - timedelta(hours=50))

        with patch.object(scheduler.notification_service, "send", side_effect=RuntimeError("boom")):
            result = scheduler.process_inactivity_check(now=NOON)

        assert result.success
        assert (result.processed, result.skipped) == (0, 2)


# ============================================================================
# Win streak
# ============================================================================

class TestWinStreak:
    """Tests for process_win_streak_check."""

    def test_milestone_sent(self, scheduler, create_user, create_device_token, test_db_session):
        user = create_user(current_streak=5)
        create_device_token(user)

        result = scheduler.process_win_streak_check(user_id=user.id, now=NOON)

        assert (result.processed, result.skipped) == (1, 0)
        log = all_logs(test_db_session)[0]
        assert log.dedupe_key == f"win-streak:{user.id}:5"
        assert log.body == "You've hit 5 slips in a row. Keep the streak alive tonight"

    def test_non_milestone_skipped(self, scheduler, create_user, test_db_session):
        user = create_user(current_streak=4)

        result = scheduler.process_win_streak_check(user_id=user.id, now=NOON)

        assert (result.processed, result.skipped) == (0, 1)
        assert all_logs(test_db_session) == []

    def test_missing_user_id(self, scheduler):
        result = scheduler.process_win_streak_check(user_id=None, now=NOON)
        assert result.success and result.skipped == 1

    def test_inactive_user(self, scheduler, create_user):
        user = create_user(current_streak=3, status=UserStatus.DELETED)
        result = scheduler.process_win_streak_check(user_id=user.id, now=NOON)
        assert result.skipped == 1

    def test_retry_is_deduplicated(self, scheduler, create_user, create_device_token, test_db_session):
        user = create_user(current_streak=3)
        create_device_token(user)

        scheduler.process_win_streak_check(user_id=user.id, now=NOON)
        scheduler.process_win_streak_check(user_id=user.id, now=NOON)

        assert [log.status for log in all_logs(test_db_session)] == [
            SendLogStatus.SENT,
            SendLogStatus.SUPPRESSED,
        ]


# ============================================================================
# Leaderboard proximity
# ============================================================================

class TestLeaderboardProximity:
    """Tests for process_leaderboard_proximity."""

    def test_nudges_users_within_reach(
        self, scheduler, create_user, create_entry, weekly_board, test_db_session
    ):
        create_entry(create_user(), rank=9, score=110)
        create_entry(create_user(), rank=10, score=100)
        close = create_user()
        create_entry(close, rank=11, score=80.5)
        create_entry(create_user(), rank=12, score=40)

        result = scheduler.process_leaderboard_proximity(now=NOON)

        assert result.processed == 1
        log = all_logs(test_db_session)[0]
        assert log.user_id == close.id
        assert log.entity_id == str(weekly_board.id)
        assert log.body == "You're 20 points away from Top 10 on this week's leaderboard"

    def test_tied_score_rounds_up_to_one(self, scheduler, create_user, create_entry, test_db_session):
        create_entry(create_user(), rank=10, score=100)
        create_entry(create_user(), rank=11, score=100)

        scheduler.process_leaderboard_proximity(now=NOON)

        assert all_logs(test_db_session)[0].body.startswith("You're 1 points away")

    def test_no_board(self, scheduler):
        result = scheduler.process_leaderboard_proximity(now=NOON)
        assert result.success
        assert result.message == "No active weekly leaderboard"

    def test_no_rank_ten(self, scheduler, create_user, create_entry):
        create_entry(create_user(), rank=1, score=500)
        result = scheduler.process_leaderboard_proximity(now=NOON)
        assert result.processed == 0


# ============================================================================
# Receipts and deferred redelivery
# ============================================================================

class TestExpoReceipts:
    """Tests for process_expo_receipts."""

    def _log(self, db, user, ticket_id, created_at, status=SendLogStatus.SENT):
        log = NotificationSendLog(
            user_id=user.id,
            category="SOCIAL",
            urgency="MEDIUM",
            status=status,
            dedupe_key=f"k-{ticket_id}",
            template_id="social.friend_request",
            expo_ticket_id=ticket_id,
            created_at=created_at,
        )
        db.add(log)
        db.commit()
        return log

    def test_reconciles_recent_tickets(self, scheduler, test_user, test_db_session, expo_client):
        self._log(test_db_session, test_user, "t-new", NAIVE_NOON - timedelta(hours=1))
        self._log(test_db_session, test_user, "t-wait", NAIVE_NOON - timedelta(hours=2))
        self._log(test_db_session, test_user, "t-old", NAIVE_NOON - timedelta(hours=25))
        expo_client.post.side_effect = None
        expo_client.post.return_value = httpx.Response(
            200,
            json={"data": {"t-new": {"status": "ok"}}},
            request=httpx.Request("POST", "https://exp.host/--/api/v2/push/getReceipts"),
        )

        result = scheduler.process_expo_receipts(now=NOON)

        assert result.success
        assert (result.processed, result.skipped) == (2, 1)
        # Oldest first, and tickets outside the lookback are not requested
        assert expo_client.post.call_args.kwargs["json"] == {"ids": ["t-wait", "t-new"]}

    def test_nothing_pending(self, scheduler, expo_client):
        result = scheduler.process_expo_receipts(now=NOON)
        assert result.message == "No pending receipts"
        expo_client.post.assert_not_called()

    def test_malformed_receipt_details(self, scheduler, test_user, test_db_session, expo_client):
        log = self._log(test_db_session, test_user, "t-1", NAIVE_NOON - timedelta(hours=1))
        expo_client.post.side_effect = None
        expo_client.post.return_value = httpx.Response(
            200,
            json={"data": {"t-1": {"status": "error", "details": "boom"}}},
            request=httpx.Request("POST", "https://exp.host/--/api/v2/push/getReceipts"),
        )

        result = scheduler.process_expo_receipts(now=NOON)

        assert result.success
        test_db_session.refresh(log)
        assert log.status == SendLogStatus.FAILED
        assert log.expo_receipt_status == "error"

    def test_reconciliation_error_reported(self, scheduler, test_user, test_db_session):
        self._log(test_db_session, test_user, "t-1", NAIVE_NOON - timedelta(hours=1))
        push_service = scheduler.notification_service.push_service

        with patch.object(push_service, "check_receipts", side_effect=RuntimeError("boom")):
            result = scheduler.process_expo_receipts(now=NOON)

        assert result.success is False
        assert "boom" in result.message


class TestDeferredNotifications:
    """Tests for process_deferred_notifications."""

    def test_is_a_no_op(self, scheduler, expo_client):
        result = scheduler.process_deferred_notifications(now=NOON)
        assert result.success
        assert result.processed == 0
        expo_client.post.assert_not_called()
