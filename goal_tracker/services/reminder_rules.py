"""
Reminder date rules.

Pure functions deciding, for a given UTC date, which reminder frequencies
fire and how an individual goal is classified. The same rules produce the
table filter used to fetch reminder candidates, so the query and the
in-process classification cannot drift apart.
"""

from datetime import date, datetime, timedelta, timezone
from typing import List, Optional

from goal_tracker.models.goals import ReminderFrequency, ReminderKind, format_utc_date, parse_utc_date
from goal_tracker.storage.filters import TableFilter

# Business week starts the day after Sunday.
WEEKLY_REMINDER_WEEKDAY = 0
BIWEEKLY_REMINDER_DAYS = (1, 16)
QUARTER_START_MONTHS = (1, 4, 7, 10)
NEAR_EXPIRY_DAYS = 3

PERSONAL_END_DATE_COLUMN = "EndDateUTC"
TEAM_END_DATE_COLUMN = "TeamGoalEndDateUTC"


def utc_today(now: datetime) -> date:
    """Time-truncated UTC date for a clock reading."""
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.date()


def is_frequency_due(frequency: ReminderFrequency, today: date) -> bool:
    if frequency == ReminderFrequency.WEEKLY:
        return today.weekday() == WEEKLY_REMINDER_WEEKDAY
    if frequency == ReminderFrequency.BIWEEKLY:
        return today.day in BIWEEKLY_REMINDER_DAYS
    if frequency == ReminderFrequency.MONTHLY:
        return today.day == 1
    if frequency == ReminderFrequency.QUARTERLY:
        return today.day == 1 and today.month in QUARTER_START_MONTHS
    return False


def due_frequencies(today: date) -> List[ReminderFrequency]:
    return [frequency for frequency in ReminderFrequency if is_frequency_due(frequency, today)]


def expired_end_date(today: date) -> date:
    """End date of cycles that closed yesterday."""
    return today - timedelta(days=1)


def near_expiry_end_date(today: date) -> date:
    return today + timedelta(days=NEAR_EXPIRY_DAYS)


def classify(end_date_utc: Optional[str], frequency: ReminderFrequency, today: date) -> Optional[ReminderKind]:
    """
    Classify one goal for today.

    Expired takes precedence over near-expiry, which takes precedence over
    a frequency reminder. Returns None when nothing is due.

    Args:
        end_date_utc: Stored cycle end date (MM-dd-yyyy)
        frequency: Goal reminder frequency
        today: UTC date being evaluated

    Returns:
        The reminder kind, or None
    """
    end_date = parse_utc_date(end_date_utc)
    if end_date is not None:
        if end_date == expired_end_date(today):
            return ReminderKind.EXPIRED
        if end_date == near_expiry_end_date(today):
            return ReminderKind.NEAR_EXPIRY
    if is_frequency_due(frequency, today):
        return ReminderKind.FREQUENCY
    return None


def _reminder_filter(today: date, end_date_column: str) -> TableFilter:
    conditions = [TableFilter.eq("ReminderFrequency", int(frequency)) for frequency in due_frequencies(today)]
    conditions.append(TableFilter.eq(end_date_column, format_utc_date(expired_end_date(today))))
    conditions.append(TableFilter.eq(end_date_column, format_utc_date(near_expiry_end_date(today))))

    return (
        TableFilter.eq("IsActive", True)
        & TableFilter.eq("IsDeleted", False)
        & TableFilter.eq("IsReminderActive", True)
        & TableFilter.any_of(conditions)
    )


def personal_reminder_filter(today: date) -> TableFilter:
    """Unaligned personal goals due for a reminder or closure today."""
    return _reminder_filter(today, PERSONAL_END_DATE_COLUMN) & TableFilter.eq("IsAligned", False)


def team_reminder_filter(today: date) -> TableFilter:
    return _reminder_filter(today, TEAM_END_DATE_COLUMN)
