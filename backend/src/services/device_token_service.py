"""
Device token service for Expo push tokens.

Resolves the devices a user can be reached on and soft-deletes tokens the
push gateway has reported as unregistered. Token registration is owned by
the mobile API and is not handled here.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from backend.src.models.device_token import DeviceToken
from backend.src.utils.logging_config import get_logger, mask_token


logger = get_logger("push")


EXPO_TOKEN_PREFIX = "ExponentPushToken["
EXPO_TOKEN_SUFFIX = "]"


def is_valid_expo_token(token: Optional[str]) -> bool:
    """Check that a token has the Expo push token shape."""
    return bool(
        token
        and token.startswith(EXPO_TOKEN_PREFIX)
        and token.endswith(EXPO_TOKEN_SUFFIX)
        and len(token) > len(EXPO_TOKEN_PREFIX) + len(EXPO_TOKEN_SUFFIX)
    )


class DeviceTokenService:
    """
    Service for reading and deactivating device push tokens.

    Handles token lifecycle from the sender side:
    - List active, well-formed tokens (most recently used first)
    - Deactivate one token (DeviceNotRegistered receipt)
    - Deactivate all of a user's tokens (receipt without a recorded token)
    """

    def __init__(self, db: Session):
        self.db = db

    def get_active_tokens_for_user(self, user_id: int) -> List[str]:
        """
        Get a user's active Expo tokens, most recently used first.

        Malformed tokens are skipped (and logged) rather than sent.

        Args:
            user_id: Recipient user's internal ID

        Returns:
            List of token strings
        """
        rows = (
            self.db.query(DeviceToken)
            .filter(
                DeviceToken.user_id == user_id,
                DeviceToken.is_active.is_(True),
            )
            .order_by(DeviceToken.last_used_at.desc(), DeviceToken.id.desc())
            .all()
        )

        tokens = []
        for row in rows:
            if is_valid_expo_token(row.token):
                tokens.append(row.token)
            else:
                logger.warning(
                    "Skipping malformed device token",
                    extra={"user_id": user_id, "token": mask_token(row.token)},
                )
        return tokens

    def deactivate_token(self, token: str) -> bool:
        """
        Soft-delete a single token.

        Args:
            token: Exact token string

        Returns:
            True if an active token was deactivated
        """
        row = (
            self.db.query(DeviceToken)
            .filter(DeviceToken.token == token, DeviceToken.is_active.is_(True))
            .first()
        )
        if row is None:
            return False

        row.is_active = False
        row.deactivated_at = datetime.utcnow()
        self.db.commit()
        logger.info(
            "Deactivated device token",
            extra={"user_id": row.user_id, "token": mask_token(token)},
        )
        return True

    def deactivate_all_for_user(self, user_id: int) -> int:
        """
        Soft-delete every active token of a user.

        Returns:
            Number of tokens deactivated
        """
        now = datetime.utcnow()
        count = (
            self.db.query(DeviceToken)
            .filter(DeviceToken.user_id == user_id, DeviceToken.is_active.is_(True))
            .update(
                {DeviceToken.is_active: False, DeviceToken.deactivated_at: now},
                synchronize_session=False,
            )
        )
        self.db.commit()
        if count:
            logger.info(
                "Deactivated all device tokens for user",
                extra={"user_id": user_id, "count": count},
            )
        return count
