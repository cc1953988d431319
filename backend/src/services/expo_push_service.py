"""
Expo push transport.

Sends push messages to the Expo Push API in chunks and reconciles delivery
receipts back onto the send log. It is the only writer of the
SENT → DELIVERED | FAILED transition and of token deactivation.

Protocol:
- POST {push_url} with a JSON array of messages (max 100 per request);
  the response {"data": [ticket, ...]} is aligned with the request by index
- POST {receipts_url} with {"ids": [...]}; the response is
  {"data": {ticket_id: {"status": "ok" | "error", "details": {...}}}}
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.src.config.settings import DEFAULT_EXPO_PUSH_URL, DEFAULT_EXPO_RECEIPTS_URL
from backend.src.models.notification_send_log import NotificationSendLog, SendLogStatus
from backend.src.services.device_token_service import DeviceTokenService, is_valid_expo_token
from backend.src.services.exceptions import PushGatewayError
from backend.src.utils.logging_config import get_logger, mask_token


logger = get_logger("push")


# ============================================================================
# Constants
# ============================================================================

PUSH_CHUNK_SIZE = 100
RECEIPTS_CHUNK_SIZE = 1000
DEFAULT_TIMEOUT = 10.0  # seconds

RECEIPT_OK = "ok"
RECEIPT_ERROR = "error"
DEVICE_NOT_REGISTERED = "DeviceNotRegistered"


def _details_error(entry: Dict[str, Any]) -> Optional[str]:
    """Error code from a ticket or receipt's details object, if well formed."""
    details = entry.get("details")
    if not isinstance(details, dict):
        return None
    error = details.get("error")
    return str(error) if error else None


# ============================================================================
# Data Types
# ============================================================================


@dataclass
class ExpoPushMessage:
    """
    One message addressed to one device token.

    Attributes:
        to: Expo push token
        title / body: Rendered content
        data: Payload delivered to the app (category, entity id, deep link)
        sound: Notification sound ("default" or None for silent)
        priority: "high" or "normal"
        ttl: Seconds the gateway keeps an undelivered message
        channel_id: Android notification channel
    """
    to: str
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)
    sound: Optional[str] = "default"
    priority: str = "normal"
    ttl: int = 86400
    channel_id: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """Serialize to the gateway's JSON shape."""
        payload = {
            "to": self.to,
            "title": self.title,
            "body": self.body,
            "data": self.data,
            "sound": self.sound,
            "priority": self.priority,
            "ttl": self.ttl,
        }
        if self.channel_id:
            payload["channelId"] = self.channel_id
        return payload


@dataclass
class ExpoPushResult:
    """Outcome of one message: a ticket id on success, an error otherwise."""
    token: str
    success: bool
    ticket_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class ReceiptCheckSummary:
    """Counts from one receipt reconciliation pass."""
    checked: int = 0
    delivered: int = 0
    failed: int = 0
    pending: int = 0
    tokens_deactivated: int = 0


# ============================================================================
# ExpoPushService Class
# ============================================================================


class ExpoPushService:
    """
    HTTP transport for the Expo Push API.

    Attributes:
        db: Session used to resolve and reconcile send logs and tokens
        push_url / receipts_url: Gateway endpoints
    """

    def __init__(
        self,
        db: Session,
        client: Optional[httpx.Client] = None,
        push_url: str = DEFAULT_EXPO_PUSH_URL,
        receipts_url: str = DEFAULT_EXPO_RECEIPTS_URL,
        access_token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        token_service: Optional[DeviceTokenService] = None,
    ):
        """
        Initialize the transport.

        Args:
            db: SQLAlchemy session
            client: Pre-built httpx client (tests inject a mock)
            push_url: Send endpoint
            receipts_url: Receipts endpoint
            access_token: Optional Expo access token (Bearer auth)
            timeout: Per-request timeout in seconds
            token_service: Device token service (defaults to one on db)
        """
        self.db = db
        self.push_url = push_url
        self.receipts_url = receipts_url
        self.timeout = timeout
        self.token_service = token_service or DeviceTokenService(db)

        if client is None:
            headers = {
                "Accept": "application/json",
                "Accept-Encoding": "gzip, deflate",
                "Content-Type": "application/json",
            }
            if access_token:
                headers["Authorization"] = f"Bearer {access_token}"
            client = httpx.Client(headers=headers, timeout=timeout)
        self._client = client

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    # -------------------------------------------------------------------------
    # Token helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def is_valid_expo_token(token: Optional[str]) -> bool:
        return is_valid_expo_token(token)

    def get_active_tokens_for_user(self, user_id: int) -> List[str]:
        return self.token_service.get_active_tokens_for_user(user_id)

    def deactivate_token(self, token: str) -> bool:
        return self.token_service.deactivate_token(token)

    # -------------------------------------------------------------------------
    # Sending
    # -------------------------------------------------------------------------

    def send_batch(self, messages: Sequence[ExpoPushMessage]) -> List[ExpoPushResult]:
        """
        Send messages in chunks of at most 100.

        A failed request (timeout, non-2xx, malformed body or any other error)
        marks every message of its chunk as failed and does not affect other
        chunks. There is no inline retry.

        Args:
            messages: Messages to send

        Returns:
            One result per message, in input order
        """
        results: List[ExpoPushResult] = []

        for start in range(0, len(messages), PUSH_CHUNK_SIZE):
            chunk = messages[start:start + PUSH_CHUNK_SIZE]
            try:
                tickets = self._post_chunk(chunk)
            except PushGatewayError as e:
                logger.error(
                    f"Push chunk failed: {e}",
                    extra={
                        "chunk_start": start,
                        "chunk_size": len(chunk),
                        "status_code": e.status_code,
                    },
                )
                results.extend(
                    ExpoPushResult(token=message.to, success=False, error=e.message)
                    for message in chunk
                )
                continue

            results.extend(self._align_tickets(chunk, tickets))

        success_count = sum(1 for r in results if r.success)
        logger.info(
            "Push batch sent",
            extra={
                "total": len(messages),
                "success": success_count,
                "failed": len(results) - success_count,
            },
        )
        return results

    def _post_chunk(self, chunk: Sequence[ExpoPushMessage]) -> List[Dict[str, Any]]:
        """
        POST one chunk and return its ticket list.

        Raises:
            PushGatewayError: If the request failed as a whole
        """
        try:
            response = self._client.post(
                self.push_url,
                json=[message.to_payload() for message in chunk],
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise PushGatewayError(f"Push request timed out: {e}")
        except httpx.HTTPError as e:
            raise PushGatewayError(f"Push request failed: {e}")
        except Exception as e:
            raise PushGatewayError(f"Push request failed: {e}") from e

        if not response.is_success:
            raise PushGatewayError(
                f"Push gateway returned {response.status_code}",
                status_code=response.status_code,
            )

        try:
            tickets = response.json()["data"]
        except (ValueError, KeyError, TypeError) as e:
            raise PushGatewayError(f"Malformed push response: {e}", status_code=response.status_code)
        if not isinstance(tickets, list):
            raise PushGatewayError("Malformed push response: data is not a list", status_code=response.status_code)
        return tickets

    @staticmethod
    def _align_tickets(
        chunk: Sequence[ExpoPushMessage],
        tickets: List[Dict[str, Any]],
    ) -> List[ExpoPushResult]:
        results = []
        for index, message in enumerate(chunk):
            ticket = tickets[index] if index < len(tickets) else None
            if not isinstance(ticket, dict):
                results.append(ExpoPushResult(token=message.to, success=False, error="Missing ticket"))
                continue

            if ticket.get("status") == RECEIPT_OK and ticket.get("id"):
                results.append(ExpoPushResult(token=message.to, success=True, ticket_id=ticket["id"]))
                continue

            error = str(_details_error(ticket) or ticket.get("message") or "Unknown error")
            logger.warning(
                f"Push ticket error: {error}",
                extra={"token": mask_token(message.to)},
            )
            results.append(ExpoPushResult(token=message.to, success=False, error=error))
        return results

    # -------------------------------------------------------------------------
    # Receipts
    # -------------------------------------------------------------------------

    def check_receipts(self, ticket_ids: Sequence[str]) -> ReceiptCheckSummary:
        """
        Fetch receipts for tickets and resolve their send logs.

        ok → DELIVERED; error → FAILED with the error code.
        DeviceNotRegistered additionally deactivates the exact token recorded
        on the log, or every active token of the user when none was recorded.
        Only rows still SENT are updated, so each ticket resolves once.
        Receipts not yet available leave their rows SENT.

        Args:
            ticket_ids: Ticket ids issued by send_batch

        Returns:
            ReceiptCheckSummary (never raises)
        """
        summary = ReceiptCheckSummary()
        ticket_ids = [t for t in ticket_ids if t]
        if not ticket_ids:
            return summary

        for start in range(0, len(ticket_ids), RECEIPTS_CHUNK_SIZE):
            chunk = ticket_ids[start:start + RECEIPTS_CHUNK_SIZE]
            try:
                receipts = self._fetch_receipts(chunk)
            except PushGatewayError as e:
                logger.error(
                    f"Receipt fetch failed: {e}",
                    extra={"ticket_count": len(chunk), "status_code": e.status_code},
                )
                continue

            try:
                self._apply_receipts(chunk, receipts, summary)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(
                    f"Failed to apply receipts: {e}",
                    extra={"ticket_count": len(chunk)},
                )
            except Exception as e:
                self.db.rollback()
                logger.exception(
                    f"Unexpected error applying receipts: {e}",
                    extra={"ticket_count": len(chunk)},
                )

        logger.info(
            "Push receipts processed",
            extra={
                "checked": summary.checked,
                "delivered": summary.delivered,
                "failed": summary.failed,
                "pending": summary.pending,
                "tokens_deactivated": summary.tokens_deactivated,
            },
        )
        return summary

    def _fetch_receipts(self, ticket_ids: Sequence[str]) -> Dict[str, Any]:
        """
        POST ticket ids to the receipts endpoint.

        Raises:
            PushGatewayError: If the request failed or the body is malformed
        """
        try:
            response = self._client.post(
                self.receipts_url,
                json={"ids": list(ticket_ids)},
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise PushGatewayError(f"Receipts request timed out: {e}")
        except httpx.HTTPError as e:
            raise PushGatewayError(f"Receipts request failed: {e}")
        except Exception as e:
            raise PushGatewayError(f"Receipts request failed: {e}") from e

        if not response.is_success:
            raise PushGatewayError(
                f"Receipts endpoint returned {response.status_code}",
                status_code=response.status_code,
            )

        try:
            receipts = response.json()["data"]
        except (ValueError, KeyError, TypeError) as e:
            raise PushGatewayError(f"Malformed receipts response: {e}", status_code=response.status_code)
        if not isinstance(receipts, dict):
            raise PushGatewayError("Malformed receipts response: data is not an object", status_code=response.status_code)
        return receipts

    def _apply_receipts(
        self,
        ticket_ids: Sequence[str],
        receipts: Dict[str, Any],
        summary: ReceiptCheckSummary,
    ) -> None:
        logs = (
            self.db.query(NotificationSendLog)
            .filter(
                NotificationSendLog.expo_ticket_id.in_(list(ticket_ids)),
                NotificationSendLog.status == SendLogStatus.SENT,
            )
            .all()
        )

        for log in logs:
            summary.checked += 1
            receipt = receipts.get(log.expo_ticket_id)
            if not isinstance(receipt, dict):
                summary.pending += 1
                continue

            if receipt.get("status") == RECEIPT_OK:
                if self._resolve(log, SendLogStatus.DELIVERED, RECEIPT_OK):
                    summary.delivered += 1
                continue

            error_code = _details_error(receipt) or RECEIPT_ERROR
            if not self._resolve(log, SendLogStatus.FAILED, error_code, receipt.get("message")):
                continue
            summary.failed += 1

            if error_code == DEVICE_NOT_REGISTERED:
                summary.tokens_deactivated += self._deactivate_for_log(log)

        self.db.commit()

    def _resolve(
        self,
        log: NotificationSendLog,
        status: SendLogStatus,
        receipt_status: str,
        message: Optional[str] = None,
    ) -> bool:
        """Transition one SENT row; False if another runner got there first."""
        values = {
            NotificationSendLog.status: status,
            NotificationSendLog.expo_receipt_status: receipt_status,
        }
        if message:
            values[NotificationSendLog.metadata_json] = {
                **(log.metadata_json or {}),
                "receipt_message": message,
            }
        updated = (
            self.db.query(NotificationSendLog)
            .filter(
                NotificationSendLog.id == log.id,
                NotificationSendLog.status == SendLogStatus.SENT,
            )
            .update(values, synchronize_session=False)
        )
        return updated == 1

    def _deactivate_for_log(self, log: NotificationSendLog) -> int:
        if log.device_token:
            return 1 if self.token_service.deactivate_token(log.device_token) else 0

        logger.warning(
            "DeviceNotRegistered receipt without recorded token; deactivating all user tokens",
            extra={"user_id": log.user_id, "ticket_id": log.expo_ticket_id},
        )
        return self.token_service.deactivate_all_for_user(log.user_id)
