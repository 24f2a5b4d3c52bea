#!/usr/bin/env python3
"""
Shared pytest configuration and fixtures for goal tracker tests.
Provides in-memory storage, a fixed clock, goal builders and notifier mocks.
"""

import os
import sys
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from goal_tracker.models.goals import (
    ConversationRef,
    PersonalGoalDetail,
    PersonalGoalNoteDetail,
    ReminderFrequency,
    TeamGoalDetail,
    TeamMember,
)
from goal_tracker.services.goal_cycle_closer import GoalCycleCloser
from goal_tracker.services.notification_dispatcher import NotificationDispatcher
from goal_tracker.services.retry_policy import DeliveryRetryPolicy, is_transient_delivery_error
from goal_tracker.storage.providers import create_storage_providers
from tests.fixtures.goal_data import GOALS_TAB_URL, LATER_UTC, SERVICE_URL, TODAY


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )
    config.addinivalue_line(
        "markers", "unit: mark test as unit test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


# Environment setup
@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """Set up test environment variables."""
    test_env = {
        'MICROSOFT_APP_ID': 'test-app-id-123',
        'MICROSOFT_APP_PASSWORD': 'test-password-456',
        'MICROSOFT_APP_TENANT_ID': 'test-tenant-789',
        'API_KEY': 'test-api-key-12345',
        'STORAGE_CONNECTION_STRING': '',
        'ENABLE_REMINDER_SCHEDULER': 'false',
        'ENABLE_DELETION_SWEEPER': 'false',
    }

    with patch.dict(os.environ, test_env):
        yield


@pytest.fixture
def fixed_clock():
    """Clock pinned to 09:00 UTC on TODAY."""
    return lambda: datetime(TODAY.year, TODAY.month, TODAY.day, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def storage():
    """In-memory storage providers."""
    return create_storage_providers(None)


@pytest.fixture
def make_personal_goal():
    """Build a personal goal with reminder-ready defaults."""
    def _make(user="user-1", goal_id="goal-1", **overrides):
        values = dict(
            user_aad_object_id=user,
            personal_goal_id=goal_id,
            goal_name=f"Goal {goal_id}",
            end_date_utc=LATER_UTC,
            reminder_frequency=ReminderFrequency.MONTHLY,
            conversation_id=f"conversation-{user}",
            service_url=SERVICE_URL,
        )
        values.update(overrides)
        return PersonalGoalDetail(**values)
    return _make


@pytest.fixture
def make_team_goal():
    def _make(team="team-1", goal_id="team-goal-1", **overrides):
        values = dict(
            team_id=team,
            team_goal_id=goal_id,
            team_goal_name=f"Team goal {goal_id}",
            team_goal_end_date_utc=LATER_UTC,
            reminder_frequency=ReminderFrequency.MONTHLY,
            service_url=SERVICE_URL,
        )
        values.update(overrides)
        return TeamGoalDetail(**values)
    return _make


@pytest.fixture
def make_note():
    def _make(user="user-1", goal_id="goal-1", note_id="note-1", **overrides):
        values = dict(
            user_aad_object_id=user,
            personal_goal_note_id=note_id,
            personal_goal_id=goal_id,
            personal_goal_note_description=f"Note {note_id}",
        )
        values.update(overrides)
        return PersonalGoalNoteDetail(**values)
    return _make


@pytest.fixture
def make_aligned_goal(make_personal_goal):
    """Personal goal aligned to a team goal."""
    def _make(user, goal_id, team="team-1", team_goal_id="team-goal-1", **overrides):
        return make_personal_goal(
            user=user,
            goal_id=goal_id,
            is_aligned=True,
            team_id=team,
            team_goal_id=team_goal_id,
            **overrides
        )
    return _make


# Bot Framework mocks
@pytest.fixture
def mock_notifier():
    """Mock conversation notifier and roster provider."""
    notifier = MagicMock()
    notifier.is_transient = is_transient_delivery_error
    notifier.send_proactive = AsyncMock(return_value="activity-123")
    notifier.list_members = AsyncMock(return_value=[])

    async def open_conversation(team_id, service_url, member: TeamMember):
        return ConversationRef(
            conversation_id=f"personal-{member.id}",
            service_url=service_url,
            conversation_type="personal"
        )

    notifier.create_conversation = AsyncMock(side_effect=open_conversation)
    return notifier


@pytest.fixture
def retry_policy():
    """Production retry bound without the waits."""
    return DeliveryRetryPolicy(retry_count=2, median_first_delay=0)


@pytest.fixture
def dispatcher(mock_notifier, storage, retry_policy):
    return NotificationDispatcher(
        notifier=mock_notifier,
        roster=mock_notifier,
        personal_goals=storage.personal_goals,
        teams=storage.teams,
        goals_tab_url=GOALS_TAB_URL,
        retry_policy=retry_policy
    )


@pytest.fixture
def closer(storage, mock_notifier, dispatcher):
    return GoalCycleCloser(
        personal_goals=storage.personal_goals,
        notes=storage.notes,
        team_goals=storage.team_goals,
        teams=storage.teams,
        roster=mock_notifier,
        dispatcher=dispatcher
    )

