from .goals import (
    UTC_DATE_FORMAT,
    ConversationRef,
    PersonalGoalDetail,
    PersonalGoalNoteDetail,
    PersonalGoalStatus,
    ReminderFrequency,
    ReminderKind,
    TeamDetail,
    TeamGoalDetail,
    TeamGoalStatus,
    TeamMember,
    format_utc_date,
    parse_utc_date,
    split_team_goal_ids,
)

__all__ = [
    'UTC_DATE_FORMAT', 'ConversationRef', 'PersonalGoalDetail', 'PersonalGoalNoteDetail',
    'PersonalGoalStatus', 'ReminderFrequency', 'ReminderKind', 'TeamDetail',
    'TeamGoalDetail', 'TeamGoalStatus', 'TeamMember', 'format_utc_date',
    'parse_utc_date', 'split_team_goal_ids'
]
