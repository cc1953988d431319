"""
Notification gatekeeper.

Decides whether a candidate push may be sent and, if so, dispatches it.
The pipeline runs in a fixed order and stops at the first stage that
declines:

1. Master switch
2. Category toggle
3. Dedupe (atomic set-if-absent on the dedupe key)
4. Quiet hours (HIGH urgency bypasses)
5. Daily cap (HIGH urgency is exempt and not counted)
6. Dispatch: render, resolve tokens, send, write one send log per device

Every decision is written to the send log. Dispatched notifications, quiet-hours
suppressions and HIGH/MEDIUM cap suppressions also land in the in-app inbox;
LOW urgency over the cap is dropped. send() never raises; callers
get a typed SendOutcome.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from backend.src.models.notification_inbox_item import NotificationInboxItem
from backend.src.models.notification_send_log import NotificationSendLog, SendLogStatus
from backend.src.services.exceptions import (
    NotFoundError,
    NotificationCacheError,
    TemplateNotFoundError,
)
from backend.src.services.expo_push_service import ExpoPushMessage, ExpoPushResult, ExpoPushService
from backend.src.services.notification_categories import (
    CategoryConfig,
    NotificationCategory,
    Urgency,
    build_deep_link,
    get_category_config,
    is_cap_exempt,
)
from backend.src.services.notification_preference_service import (
    NotificationPreferenceService,
    UserNotificationPreferences,
)
from backend.src.services.notification_templates import NotificationTemplate, get_template, render_template
from backend.src.utils.logging_config import get_logger
from backend.src.utils.notification_cache import NotificationCache
from backend.src.utils.timezone_utils import (
    DEFAULT_TIMEZONE,
    get_local_date,
    is_in_quiet_hours,
    next_quiet_hours_end,
    to_naive_utc,
)


logger = get_logger("services")


DEFAULT_DAILY_CAP = 10
DEFAULT_INBOX_EXPIRY_DAYS = 30

# Urgencies kept in the inbox when the daily cap suppresses the push
CAP_INBOX_URGENCIES = (Urgency.HIGH, Urgency.MEDIUM)


class SendOutcome(str, enum.Enum):
    """
    Result of a gatekeeper decision.

    - ACCEPTED: At least one device message got a gateway ticket
    - SUPPRESSED_*: Declined by the named pipeline stage
    - FAILED: Dispatch was attempted (or could not be) and nothing was sent
    """
    ACCEPTED = "accepted"
    SUPPRESSED_MASTER_OFF = "suppressed_master_off"
    SUPPRESSED_CATEGORY_OFF = "suppressed_category_off"
    SUPPRESSED_DUPLICATE = "suppressed_duplicate"
    SUPPRESSED_QUIET_HOURS = "suppressed_quiet_hours"
    SUPPRESSED_DAILY_CAP = "suppressed_daily_cap"
    FAILED = "failed"

    @property
    def is_suppressed(self) -> bool:
        return self.value.startswith("suppressed_")


@dataclass
class NotificationRequest:
    """
    A candidate notification for one user.

    Attributes:
        user_id: Recipient
        category: Notification category
        template_id: Template to render (see notification_templates)
        variables: Template variables
        entity_id: Entity the notification points at (deep link target)
        dedupe_key: Business key; identical keys within the category's
            window are suppressed. Defaults to "{category}:{user}:{entity}".
        metadata: Extra context stored on the send log
    """
    user_id: int
    category: NotificationCategory
    template_id: str
    variables: Dict[str, Any] = field(default_factory=dict)
    entity_id: Optional[str] = None
    dedupe_key: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @property
    def resolved_dedupe_key(self) -> str:
        if self.dedupe_key:
            return self.dedupe_key
        category = NotificationCategory(self.category).value
        return f"{category}:{self.user_id}:{self.entity_id or 'none'}"


class NotificationService:
    """
    Gatekeeper and dispatcher for push notifications.

    Collaborators are injected once at construction; the service holds no
    per-request state.
    """

    def __init__(
        self,
        db: Session,
        cache: NotificationCache,
        push_service: ExpoPushService,
        preference_service: Optional[NotificationPreferenceService] = None,
        daily_cap: int = DEFAULT_DAILY_CAP,
        enabled: bool = True,
        default_timezone: str = DEFAULT_TIMEZONE,
        inbox_expiry_days: int = DEFAULT_INBOX_EXPIRY_DAYS,
    ):
        """
        Initialize notification service.

        Args:
            db: SQLAlchemy session for send logs
            cache: Gate cache for dedupe keys and cap counters
            push_service: Expo transport
            preference_service: Preference reader (defaults to one on db/cache)
            daily_cap: Max non-urgent sends per user per local day
            enabled: Global kill-switch; False suppresses every send
            default_timezone: Fallback zone for users without a valid one
            inbox_expiry_days: Lifetime of in-app inbox items
        """
        self.db = db
        self.cache = cache
        self.push_service = push_service
        self.preference_service = preference_service or NotificationPreferenceService(
            db, cache=cache, default_timezone=default_timezone
        )
        self.daily_cap = daily_cap
        self.enabled = enabled
        self.inbox_expiry_days = inbox_expiry_days

    # ========================================================================
    # Gatekeeper
    # ========================================================================

    def send(self, request: NotificationRequest, now: Optional[datetime] = None) -> SendOutcome:
        """
        Run a request through the gatekeeper pipeline.

        Args:
            request: Candidate notification
            now: Decision instant (defaults to the current time)

        Returns:
            SendOutcome (never raises)
        """
        if not self.enabled:
            logger.debug(
                "Notifications disabled globally",
                extra={"user_id": request.user_id, "category": str(request.category)},
            )
            return SendOutcome.SUPPRESSED_MASTER_OFF

        now = now or datetime.now(timezone.utc)
        try:
            return self._send(request, now)
        except Exception as e:
            self.db.rollback()
            logger.exception(
                f"Notification send failed: {e}",
                extra={
                    "user_id": request.user_id,
                    "category": str(request.category),
                    "dedupe_key": request.dedupe_key,
                },
            )
            return SendOutcome.FAILED

    def _send(self, request: NotificationRequest, now: datetime) -> SendOutcome:
        category = NotificationCategory(request.category)
        config = get_category_config(category)
        dedupe_key = request.resolved_dedupe_key

        # Unknown template is a caller bug; reject before touching any counters
        try:
            get_template(request.template_id)
        except TemplateNotFoundError as e:
            logger.error(
                str(e),
                extra={"user_id": request.user_id, "category": category.value},
            )
            return SendOutcome.FAILED

        try:
            prefs = self.preference_service.get_preferences(request.user_id)
        except NotFoundError:
            logger.warning(
                "Notification for unknown user",
                extra={"user_id": request.user_id, "category": category.value},
            )
            return SendOutcome.FAILED

        # 1. Master switch
        if not prefs.master_enabled:
            return self._suppress(request, config, dedupe_key, SendOutcome.SUPPRESSED_MASTER_OFF)

        # 2. Category toggle
        if not prefs.is_category_enabled(category):
            return self._suppress(request, config, dedupe_key, SendOutcome.SUPPRESSED_CATEGORY_OFF)

        # 3. Dedupe
        if not self._acquire_dedupe(dedupe_key, config, request.user_id):
            return self._suppress(request, config, dedupe_key, SendOutcome.SUPPRESSED_DUPLICATE)

        # 4. Quiet hours
        if config.urgency != Urgency.HIGH and self._in_quiet_hours(prefs, now):
            redeliver_after = next_quiet_hours_end(prefs.timezone, prefs.quiet_end, now)
            self._add_inbox_item(request, category, config, now)
            return self._suppress(
                request,
                config,
                dedupe_key,
                SendOutcome.SUPPRESSED_QUIET_HOURS,
                redeliver_after=to_naive_utc(redeliver_after),
            )

        # 5. Daily cap
        if not is_cap_exempt(category):
            local_date = get_local_date(prefs.timezone, now)
            if not self._within_daily_cap(request.user_id, local_date):
                if config.urgency in CAP_INBOX_URGENCIES:
                    self._add_inbox_item(request, category, config, now)
                return self._suppress(request, config, dedupe_key, SendOutcome.SUPPRESSED_DAILY_CAP)

        # 6. Dispatch
        return self._dispatch(request, category, config, dedupe_key, now)

    @staticmethod
    def _in_quiet_hours(prefs: UserNotificationPreferences, now: datetime) -> bool:
        if not prefs.quiet_hours_enabled:
            return False
        return is_in_quiet_hours(prefs.timezone, prefs.quiet_start, prefs.quiet_end, now)

    def _acquire_dedupe(self, dedupe_key: str, config: CategoryConfig, user_id: int) -> bool:
        try:
            return self.cache.try_acquire_dedupe(dedupe_key, config.dedupe_window)
        except NotificationCacheError as e:
            # Fail open: a duplicate is better than a missed settlement
            logger.warning(
                f"Dedupe check unavailable, allowing send: {e}",
                extra={"user_id": user_id, "dedupe_key": dedupe_key},
            )
            return True

    def _within_daily_cap(self, user_id: int, local_date: str) -> bool:
        try:
            return self.cache.increment_daily_cap(user_id, local_date, self.daily_cap)
        except NotificationCacheError as e:
            logger.warning(
                f"Daily cap check unavailable, allowing send: {e}",
                extra={"user_id": user_id, "local_date": local_date},
            )
            return True

    # ========================================================================
    # Dispatch
    # ========================================================================

    def _dispatch(
        self,
        request: NotificationRequest,
        category: NotificationCategory,
        config: CategoryConfig,
        dedupe_key: str,
        now: datetime,
    ) -> SendOutcome:
        rendered = self._add_inbox_item(request, category, config, now)
        tokens = self.push_service.get_active_tokens_for_user(request.user_id)
        sent_at = to_naive_utc(now)

        if not tokens:
            self.db.add(self._build_log(
                request, config, dedupe_key,
                status=SendLogStatus.FAILED,
                title=rendered.title,
                body=rendered.body,
                metadata={"error": "no_active_tokens"},
            ))
            self.db.commit()
            logger.info(
                "No active device tokens",
                extra={"user_id": request.user_id, "category": category.value},
            )
            return SendOutcome.FAILED

        data = {
            "type": request.template_id,
            "category": category.value,
            "entityId": request.entity_id,
            "deepLinkUrl": build_deep_link(category, request.entity_id),
            "iconType": rendered.icon_type,
        }
        messages = [
            ExpoPushMessage(
                to=token,
                title=rendered.title,
                body=rendered.body,
                data=data,
                sound="default",
                priority="high" if config.urgency == Urgency.HIGH else "normal",
                ttl=config.ttl_seconds,
                channel_id=config.channel_id,
            )
            for token in tokens
        ]

        results: List[ExpoPushResult] = self.push_service.send_batch(messages)

        for result in results:
            self.db.add(self._build_log(
                request, config, dedupe_key,
                status=SendLogStatus.SENT if result.success else SendLogStatus.FAILED,
                title=rendered.title,
                body=rendered.body,
                expo_ticket_id=result.ticket_id,
                device_token=result.token,
                sent_at=sent_at,
                metadata={"error": result.error} if result.error else None,
            ))
        self.db.commit()

        success_count = sum(1 for r in results if r.success)
        logger.info(
            "Notification dispatched",
            extra={
                "user_id": request.user_id,
                "category": category.value,
                "dedupe_key": dedupe_key,
                "devices": len(results),
                "success": success_count,
            },
        )
        return SendOutcome.ACCEPTED if success_count > 0 else SendOutcome.FAILED

    # ========================================================================
    # Inbox and send log
    # ========================================================================

    def _add_inbox_item(
        self,
        request: NotificationRequest,
        category: NotificationCategory,
        config: CategoryConfig,
        now: datetime,
    ) -> NotificationTemplate:
        """
        Render the request and stage an inbox item for it.

        The caller commits together with its send log rows.

        Returns:
            The rendered template
        """
        rendered = render_template(request.template_id, request.variables)
        self.db.add(NotificationInboxItem(
            user_id=request.user_id,
            category=category.value,
            urgency=config.urgency.value,
            title=rendered.title,
            body=rendered.body,
            icon_type=rendered.icon_type,
            entity_id=str(request.entity_id) if request.entity_id is not None else None,
            deep_link_url=build_deep_link(category, request.entity_id),
            expires_at=to_naive_utc(now) + timedelta(days=self.inbox_expiry_days),
        ))
        return rendered

    def _suppress(
        self,
        request: NotificationRequest,
        config: CategoryConfig,
        dedupe_key: str,
        outcome: SendOutcome,
        redeliver_after: Optional[datetime] = None,
    ) -> SendOutcome:
        self.db.add(self._build_log(
            request, config, dedupe_key,
            status=SendLogStatus.SUPPRESSED,
            suppression_reason=outcome.value,
            redeliver_after=redeliver_after,
        ))
        self.db.commit()
        logger.info(
            "Notification suppressed",
            extra={
                "user_id": request.user_id,
                "category": NotificationCategory(request.category).value,
                "reason": outcome.value,
                "dedupe_key": dedupe_key,
            },
        )
        return outcome

    @staticmethod
    def _build_log(
        request: NotificationRequest,
        config: CategoryConfig,
        dedupe_key: str,
        status: SendLogStatus,
        title: Optional[str] = None,
        body: Optional[str] = None,
        suppression_reason: Optional[str] = None,
        expo_ticket_id: Optional[str] = None,
        device_token: Optional[str] = None,
        redeliver_after: Optional[datetime] = None,
        sent_at: Optional[datetime] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> NotificationSendLog:
        combined_metadata = {**(request.metadata or {}), **(metadata or {})} or None
        return NotificationSendLog(
            user_id=request.user_id,
            category=NotificationCategory(request.category).value,
            urgency=config.urgency.value,
            status=status,
            suppression_reason=suppression_reason,
            dedupe_key=dedupe_key,
            template_id=request.template_id,
            entity_id=str(request.entity_id) if request.entity_id is not None else None,
            title=title,
            body=body,
            expo_ticket_id=expo_ticket_id,
            device_token=device_token,
            redeliver_after=redeliver_after,
            metadata_json=combined_metadata,
            sent_at=sent_at,
        )
