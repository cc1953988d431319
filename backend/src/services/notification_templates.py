"""
Notification message templates.

Every push is rendered from a template id plus a variables dict. Placeholders
use {variableName}. A placeholder with no matching variable is left as-is so
missing-variable bugs show up in QA instead of crashing a send. All text is
safe for lock-screen display (no financial amounts).
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from backend.src.services.exceptions import TemplateNotFoundError
from backend.src.services.notification_categories import NotificationCategory


_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")


@dataclass(frozen=True)
class NotificationTemplate:
    """Title, body and client icon variant of a message."""
    title: str
    body: str
    icon_type: str


TEMPLATES: Dict[str, NotificationTemplate] = {
    # Settlement
    "settlement.win": NotificationTemplate(
        title="Victory! You Won!",
        body="Your slip just hit vs {opponentName}! Open to see your earnings.",
        icon_type="win",
    ),
    "settlement.loss": NotificationTemplate(
        title="Match Complete",
        body="{opponentName} won this time. Better luck next match!",
        icon_type="loss",
    ),
    "settlement.draw": NotificationTemplate(
        title="It's a Draw!",
        body="You tied with {opponentName}. Stakes returned.",
        icon_type="draw",
    ),

    # PvP challenge
    "pvp_challenge.received": NotificationTemplate(
        title="Challenge Received!",
        body="{challengerName} just challenged you to a head-to-head on tonight's {eventDescription}",
        icon_type="challenge",
    ),
    "pvp_challenge.friend": NotificationTemplate(
        title="Friend Challenge!",
        body="{challengerName} wants to battle. Accept before the invite expires",
        icon_type="challenge",
    ),

    # Slip expiring
    "slip_expiring.warning": NotificationTemplate(
        title="Slip Locks Soon!",
        body="Your slip locks in {minutesRemaining} minutes. Finalize or lose your entry",
        icon_type="warning",
    ),

    # Game reminder
    "game_reminder.upcoming": NotificationTemplate(
        title="Games Starting Soon",
        body="{gameCount} games tip off in {hoursRemaining} hours. Build your slip before lock",
        icon_type="reminder",
    ),

    # Social
    "social.friend_parlay": NotificationTemplate(
        title="Rival Activity",
        body="Your friend @{friendName} just built a {legCount}-leg parlay. Think you can beat it?",
        icon_type="social",
    ),
    "social.friend_request": NotificationTemplate(
        title="New Friend Request",
        body="@{friendName} wants to be your rival",
        icon_type="social",
    ),

    # Leaderboard
    "leaderboard.proximity": NotificationTemplate(
        title="Leaderboard Alert",
        body="You're {pointsAway} points away from Top {targetRank} on this week's leaderboard",
        icon_type="leaderboard",
    ),

    # Daily digest
    "daily_digest.evening": NotificationTemplate(
        title="Tonight's Slate",
        body="Tonight's slate: {gameCount} {sport} games. Your rivals are already building.",
        icon_type="digest",
    ),

    # Weekly recap
    "weekly_recap.summary": NotificationTemplate(
        title="Your Weekly Recap",
        body="Last week you went {wins}-{losses}. You climbed {spotsClimbed} spots on the leaderboard.",
        icon_type="recap",
    ),

    # Win streak
    "win_streak.milestone": NotificationTemplate(
        title="Streak Alert!",
        body="You've hit {streakCount} slips in a row. Keep the streak alive tonight",
        icon_type="streak",
    ),

    # Re-engagement
    "inactivity.48h": NotificationTemplate(
        title="Missing in Action",
        body="You're slipping on the leaderboard. Defend your spot",
        icon_type="alert",
    ),
    "inactivity.7d": NotificationTemplate(
        title="We Miss You!",
        body="Your rivals have been climbing the leaderboard. Come back and defend your spot.",
        icon_type="alert",
    ),
    "inactivity.friend_rejoined": NotificationTemplate(
        title="Rival Alert",
        body="Your rival @{friendName} just came back. Show them what they missed.",
        icon_type="social",
    ),
}


# Template ids each category may use
CATEGORY_TEMPLATES: Dict[NotificationCategory, List[str]] = {
    NotificationCategory.SETTLEMENT: ["settlement.win", "settlement.loss", "settlement.draw"],
    NotificationCategory.PVP_CHALLENGE: ["pvp_challenge.received", "pvp_challenge.friend"],
    NotificationCategory.SLIP_EXPIRING: ["slip_expiring.warning"],
    NotificationCategory.GAME_REMINDER: ["game_reminder.upcoming"],
    NotificationCategory.SOCIAL: ["social.friend_parlay", "social.friend_request"],
    NotificationCategory.LEADERBOARD: ["leaderboard.proximity"],
    NotificationCategory.DAILY_DIGEST: ["daily_digest.evening"],
    NotificationCategory.WEEKLY_RECAP: ["weekly_recap.summary"],
    NotificationCategory.WIN_STREAK: ["win_streak.milestone"],
    NotificationCategory.INACTIVITY: [
        "inactivity.48h",
        "inactivity.7d",
        "inactivity.friend_rejoined",
    ],
}


def get_template(template_id: str) -> NotificationTemplate:
    """
    Look up a template by id.

    Raises:
        TemplateNotFoundError: If the id is not registered
    """
    template = TEMPLATES.get(template_id)
    if template is None:
        raise TemplateNotFoundError(template_id)
    return template


def interpolate(text: str, variables: Optional[Mapping[str, Any]]) -> str:
    """Replace {name} placeholders, leaving unknown ones untouched."""
    variables = variables or {}

    def _replace(match: "re.Match[str]") -> str:
        key = match.group(1)
        return str(variables[key]) if key in variables else match.group(0)

    return _PLACEHOLDER_RE.sub(_replace, text)


def render_template(template_id: str, variables: Optional[Mapping[str, Any]] = None) -> NotificationTemplate:
    """
    Render a template with variable substitution.

    Args:
        template_id: Key into TEMPLATES (e.g., "settlement.win")
        variables: Substitution values (coerced to str)

    Returns:
        Rendered NotificationTemplate

    Raises:
        TemplateNotFoundError: If the template id is unknown
    """
    template = get_template(template_id)
    return NotificationTemplate(
        title=interpolate(template.title, variables),
        body=interpolate(template.body, variables),
        icon_type=template.icon_type,
    )
