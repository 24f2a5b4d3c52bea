"""
Notification Dispatcher

Delivers goal reminder cards:
- Personal reminders to the goal owner's stored bot conversation
- Team reminders to the team's General channel, then individually to
  every member who has a personal goal aligned to the team

Every send goes through the delivery retry policy. Member fan-out is
isolated per member and reported as one aggregate error at the end.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from goal_tracker.exceptions import TeamFanOutError
from goal_tracker.models.goals import (
    ConversationRef,
    PersonalGoalDetail,
    ReminderKind,
    TeamGoalDetail,
    TeamMember,
)
from goal_tracker.services.cards import create_goal_reminder_card
from goal_tracker.services.retry_policy import DeliveryRetryPolicy
from goal_tracker.storage.providers import PersonalGoalStorageProvider, TeamStorageProvider

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """
    Sends reminder cards through a conversation notifier.

    The notifier must provide send_proactive(conversation, card) and
    create_conversation(team_id, service_url, member); the roster must
    provide list_members(team_id, service_url).
    """

    def __init__(
        self,
        notifier,
        roster,
        personal_goals: PersonalGoalStorageProvider,
        teams: TeamStorageProvider,
        goals_tab_url: str,
        retry_policy: Optional[DeliveryRetryPolicy] = None
    ):
        self.notifier = notifier
        self.roster = roster
        self.personal_goals = personal_goals
        self.teams = teams
        self.goals_tab_url = goals_tab_url
        self.retry_policy = retry_policy or DeliveryRetryPolicy(is_transient=notifier.is_transient)

    async def deliver(self, conversation: ConversationRef, card: Dict[str, Any], description: str):
        """Send a card to one conversation under the retry policy."""
        return await self.retry_policy.run(
            lambda: self.notifier.send_proactive(conversation, card),
            description
        )

    async def notify_personal(self, goal: PersonalGoalDetail, kind: ReminderKind) -> bool:
        """
        Send a reminder to the owner of a personal goal.

        Args:
            goal: Goal being reminded about
            kind: Reminder kind

        Returns:
            True if sent, False if the goal has no conversation to send to
        """
        if goal is None:
            raise ValueError("goal is required")

        if not goal.conversation_id or not goal.service_url:
            logger.warning(
                f"No conversation reference for personal goal {goal.personal_goal_id} "
                f"of user {goal.user_aad_object_id}, skipping {kind.value} reminder"
            )
            return False

        conversation = ConversationRef(
            conversation_id=goal.conversation_id,
            service_url=goal.service_url,
            conversation_type="personal"
        )
        card = create_goal_reminder_card(kind, self.goals_tab_url, goal.reminder_frequency)

        try:
            await self.deliver(
                conversation,
                card,
                f"Personal {kind.value} reminder for user {goal.user_aad_object_id}"
            )
        except Exception as e:
            logger.error(
                f"Failed to send {kind.value} reminder for personal goal {goal.personal_goal_id} "
                f"of user {goal.user_aad_object_id}: {e}",
                exc_info=True
            )
            raise

        logger.info(f"Sent {kind.value} reminder to user {goal.user_aad_object_id}")
        return True

    async def notify_team(self, team_goal: TeamGoalDetail, kind: ReminderKind) -> bool:
        """
        Send a reminder to a team channel and fan it out to aligned members.

        Args:
            team_goal: Team goal being reminded about
            kind: Reminder kind

        Returns:
            True if the channel message was sent, False if the team has no
            known service URL

        Raises:
            TeamFanOutError: after all members were attempted, if any failed
        """
        if team_goal is None:
            raise ValueError("team_goal is required")

        team_id = team_goal.team_id
        service_url = await self.teams.get_service_url(team_id, team_goal.service_url)
        if not service_url:
            logger.warning(f"No service URL for team {team_id}, skipping {kind.value} reminder")
            return False

        card = create_goal_reminder_card(kind, self.goals_tab_url, team_goal.reminder_frequency, is_team=True)
        channel = ConversationRef(
            conversation_id=team_id,
            service_url=service_url,
            conversation_type="channel"
        )

        try:
            await self.deliver(channel, card, f"Team {kind.value} reminder for team {team_id}")
        except Exception as e:
            logger.error(
                f"Failed to send {kind.value} reminder to channel of team {team_id} "
                f"(team goal {team_goal.team_goal_id}): {e}",
                exc_info=True
            )
            raise

        members = await self.roster.list_members(team_id, service_url)

        delivered = 0
        failures: List[Tuple[str, BaseException]] = []
        for member in members:
            try:
                if await self._notify_member(team_id, service_url, member, card):
                    delivered += 1
            except Exception as e:
                logger.error(
                    f"Failed to deliver {kind.value} reminder of team {team_id} to member {member.id}: {e}",
                    exc_info=True
                )
                failures.append((member.id, e))

        logger.info(
            f"Team {team_id} {kind.value} reminder: channel sent, "
            f"{delivered} member(s) notified, {len(failures)} failed"
        )

        if failures:
            raise TeamFanOutError(f"Reminder fan-out for team {team_id}", failures)
        return True

    async def _notify_member(
        self,
        team_id: str,
        service_url: str,
        member: TeamMember,
        card: Dict[str, Any]
    ) -> bool:
        if not member.aad_object_id:
            return False

        aligned = await self.personal_goals.get_user_aligned_goals(team_id, member.aad_object_id)
        if not aligned:
            return False

        conversation = await self.retry_policy.run(
            lambda: self.notifier.create_conversation(team_id, service_url, member),
            f"Opening conversation with member {member.id}"
        )
        await self.deliver(conversation, card, f"Team reminder to member {member.id}")
        return True
