"""
Team installation lifecycle.

Records where the bot is installed so team reminders can be delivered,
and clears personal goal alignment for members who leave a team.
"""

import logging
from typing import List

from goal_tracker.models.goals import ConversationRef, TeamDetail
from goal_tracker.services.cards import create_team_welcome_card
from goal_tracker.services.notification_dispatcher import NotificationDispatcher
from goal_tracker.storage.providers import PersonalGoalStorageProvider, TeamStorageProvider
from goal_tracker.workers.background_tasks import BackgroundTaskQueue

logger = logging.getLogger(__name__)


class InstallationService:
    def __init__(
        self,
        teams: TeamStorageProvider,
        personal_goals: PersonalGoalStorageProvider,
        dispatcher: NotificationDispatcher,
        task_queue: BackgroundTaskQueue
    ):
        self.teams = teams
        self.personal_goals = personal_goals
        self.dispatcher = dispatcher
        self.task_queue = task_queue

    async def on_bot_installed(self, team_id: str, service_url: str) -> TeamDetail:
        """Store the installation and queue a welcome card for the team."""
        team = TeamDetail(team_id=team_id, service_url=service_url)
        await self.teams.save_team_detail(team)
        logger.info(f"Bot installed in team {team_id}")

        channel = ConversationRef(conversation_id=team_id, service_url=service_url, conversation_type="channel")
        card = create_team_welcome_card(self.dispatcher.goals_tab_url)
        self.task_queue.enqueue(
            lambda: self.dispatcher.deliver(channel, card, f"Welcome card for team {team_id}"),
            name=f"welcome-card:{team_id}"
        )
        return team

    async def on_bot_uninstalled(self, team_id: str) -> bool:
        team = await self.teams.get_team_detail(team_id)
        if team is None:
            logger.info(f"No installation recorded for team {team_id}")
            return False

        await self.teams.delete_team_detail(team)
        logger.info(f"Bot removed from team {team_id}")
        return True

    def on_members_removed(self, team_id: str, user_aad_object_ids: List[str]) -> None:
        """Queue alignment cleanup for members who left a team."""
        for user_aad_object_id in user_aad_object_ids:
            self.task_queue.enqueue(
                lambda user_id=user_aad_object_id: self.unalign_member_goals(team_id, user_id),
                name=f"unalign:{team_id}:{user_aad_object_id}"
            )

    async def unalign_member_goals(self, team_id: str, user_aad_object_id: str) -> int:
        """Detach a user's active personal goals from a team. Returns the count changed."""
        goals = await self.personal_goals.get_user_aligned_goals(team_id, user_aad_object_id)
        if not goals:
            return 0

        for goal in goals:
            goal.unalign()
        await self.personal_goals.save_goals(goals)

        logger.info(f"Unaligned {len(goals)} goal(s) of user {user_aad_object_id} from team {team_id}")
        return len(goals)
