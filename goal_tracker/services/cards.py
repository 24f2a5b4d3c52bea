"""
Adaptive Card payloads for goal reminders.
Returns card content dicts; the messaging service wraps them as attachments.
"""
from typing import Any, Dict, Optional

from goal_tracker.models.goals import ReminderFrequency, ReminderKind

ADAPTIVE_CARD_VERSION = "1.2"

FREQUENCY_REMINDER_TEXT = {
    ReminderFrequency.WEEKLY: "Weekly reminder",
    ReminderFrequency.BIWEEKLY: "Bi-weekly reminder",
    ReminderFrequency.MONTHLY: "Monthly reminder",
    ReminderFrequency.QUARTERLY: "Quarterly reminder",
}


def reminder_type_text(kind: ReminderKind, frequency: Optional[ReminderFrequency] = None) -> str:
    if kind == ReminderKind.EXPIRED:
        return "Goal cycle has ended"
    if kind == ReminderKind.NEAR_EXPIRY:
        return "Goal cycle is ending after three days"
    return FREQUENCY_REMINDER_TEXT.get(frequency, "Goal reminder")


def reminder_type_color(kind: ReminderKind) -> str:
    if kind == ReminderKind.EXPIRED:
        return "Attention"
    if kind == ReminderKind.NEAR_EXPIRY:
        return "Warning"
    return "Accent"


def create_goal_reminder_card(
    kind: ReminderKind,
    goals_tab_url: str,
    frequency: Optional[ReminderFrequency] = None,
    is_team: bool = False
) -> Dict[str, Any]:
    """
    Create the reminder card sent to a goal owner or team.
    """
    if kind == ReminderKind.EXPIRED:
        content_text = (
            "Your team's goal cycle is over. Start a new cycle to keep tracking team goals."
            if is_team else
            "Your goal cycle is over. Set new goals to start your next cycle."
        )
    else:
        content_text = (
            "Check in on your team's goals and update their progress."
            if is_team else
            "Take a moment to review your goals and update their status."
        )

    return {
        "$schema": "http://adaptivecards.io/schemas/adaptive-card.json",
        "type": "AdaptiveCard",
        "version": ADAPTIVE_CARD_VERSION,
        "body": [
            {
                "type": "TextBlock",
                "text": "Goal reminder",
                "size": "Large",
                "weight": "Bolder",
                "wrap": True
            },
            {
                "type": "TextBlock",
                "text": reminder_type_text(kind, frequency),
                "color": reminder_type_color(kind),
                "wrap": True
            },
            {
                "type": "TextBlock",
                "text": content_text,
                "wrap": True
            }
        ],
        "actions": [
            {
                "type": "Action.OpenUrl",
                "title": "View goals",
                "url": goals_tab_url
            }
        ]
    }


def create_team_welcome_card(goals_tab_url: str) -> Dict[str, Any]:
    """Card posted to the General channel when the bot joins a team."""
    return {
        "$schema": "http://adaptivecards.io/schemas/adaptive-card.json",
        "type": "AdaptiveCard",
        "version": ADAPTIVE_CARD_VERSION,
        "body": [
            {
                "type": "TextBlock",
                "text": "Welcome to Goal Tracker",
                "size": "Large",
                "weight": "Bolder",
                "wrap": True
            },
            {
                "type": "TextBlock",
                "text": "Set team goals, align personal goals to them and get reminded before each cycle ends.",
                "wrap": True
            }
        ],
        "actions": [
            {
                "type": "Action.OpenUrl",
                "title": "View goals",
                "url": goals_tab_url
            }
        ]
    }
