"""
Teams activity handler.

Only conversation updates matter to the reminder engine: installs and
uninstalls of the bot in a team, and members leaving a team.
"""

import logging
from typing import List

from botbuilder.core import TurnContext
from botbuilder.core.teams import TeamsActivityHandler
from botbuilder.schema.teams import TeamInfo, TeamsChannelAccount

from goal_tracker.services.installation import InstallationService

logger = logging.getLogger(__name__)


class GoalTrackerBot(TeamsActivityHandler):
    def __init__(self, installation: InstallationService):
        self.installation = installation

    @staticmethod
    def _is_bot(member: TeamsChannelAccount, turn_context: TurnContext) -> bool:
        recipient = turn_context.activity.recipient
        return recipient is not None and member.id == recipient.id

    async def on_teams_members_added(
        self,
        teams_members_added: List[TeamsChannelAccount],
        team_info: TeamInfo,
        turn_context: TurnContext
    ):
        if team_info is None:
            return
        if any(self._is_bot(member, turn_context) for member in teams_members_added):
            await self.installation.on_bot_installed(team_info.id, turn_context.activity.service_url)

    async def on_teams_members_removed(
        self,
        teams_members_removed: List[TeamsChannelAccount],
        team_info: TeamInfo,
        turn_context: TurnContext
    ):
        if team_info is None:
            return

        if any(self._is_bot(member, turn_context) for member in teams_members_removed):
            await self.installation.on_bot_uninstalled(team_info.id)
            return

        removed = [member.aad_object_id for member in teams_members_removed if member.aad_object_id]
        if removed:
            logger.info(f"{len(removed)} member(s) left team {team_info.id}")
            self.installation.on_members_removed(team_info.id, removed)
