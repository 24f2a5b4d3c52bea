"""
Goal Cycle Closer

Retires goals whose cycle has ended:
- A personal goal is deactivated together with its notes (notes first)
- A team goal cascades to every member's personal goals aligned to it
  before the team goal itself is deactivated

Every step is idempotent, so a failed closure is simply repeated on the
next scheduler pass.
"""

import logging
from typing import List, Optional, Set, Tuple

from goal_tracker.exceptions import CascadeClosureError
from goal_tracker.models.goals import PersonalGoalDetail, ReminderKind, TeamGoalDetail, TeamMember
from goal_tracker.storage.providers import (
    PersonalGoalNoteStorageProvider,
    PersonalGoalStorageProvider,
    TeamGoalStorageProvider,
    TeamStorageProvider,
)

logger = logging.getLogger(__name__)


def _is_closed(goal) -> bool:
    return not goal.is_active and not goal.is_reminder_active


class GoalCycleCloser:
    def __init__(
        self,
        personal_goals: PersonalGoalStorageProvider,
        notes: PersonalGoalNoteStorageProvider,
        team_goals: TeamGoalStorageProvider,
        teams: TeamStorageProvider,
        roster,
        dispatcher=None
    ):
        self.personal_goals = personal_goals
        self.notes = notes
        self.team_goals = team_goals
        self.teams = teams
        self.roster = roster
        self.dispatcher = dispatcher

    async def close_personal_goal(self, goal: PersonalGoalDetail) -> bool:
        """
        Deactivate a personal goal and its notes.

        Notes are written before the goal so a goal is never committed as
        closed while its notes are still active. Storage errors propagate.
        """
        if goal is None:
            raise ValueError("goal is required")

        if _is_closed(goal):
            logger.debug(f"Personal goal {goal.personal_goal_id} already closed")
            return True

        await self._close_goal_set(goal.user_aad_object_id, [goal])
        logger.info(f"Closed personal goal {goal.personal_goal_id} of user {goal.user_aad_object_id}")
        return True

    async def _close_goal_set(self, user_aad_object_id: str, goals: List[PersonalGoalDetail]) -> None:
        """Close goals of one owner: all notes in one batch, then all goals in one batch."""
        notes = []
        for goal in goals:
            notes.extend(await self.notes.get_notes(user_aad_object_id, goal.personal_goal_id, active_only=True))

        if notes:
            for note in notes:
                note.is_active = False
                note.touch()
            await self.notes.save_notes(notes)

        for goal in goals:
            goal.is_active = False
            goal.is_reminder_active = False
            goal.touch()
        await self.personal_goals.save_goals(goals)

    async def close_team_goal(self, team_goal: TeamGoalDetail) -> bool:
        """
        Close a team goal and cascade to aligned member goals.

        Each member's aligned goals are closed independently. If any member
        fails, the team goal is left active and CascadeClosureError is
        raised once every member has been attempted.
        """
        if team_goal is None:
            raise ValueError("team_goal is required")

        if _is_closed(team_goal):
            logger.debug(f"Team goal {team_goal.team_goal_id} already closed")
            return True

        team_id = team_goal.team_id
        owners = await self._aligned_goal_owners(team_goal)

        closed_goals = 0
        failures: List[Tuple[str, BaseException]] = []
        for owner_id in owners:
            try:
                closed_goals += await self._close_member_goals(team_goal, owner_id)
            except Exception as e:
                logger.error(
                    f"Failed to close goals of member {owner_id} aligned to team goal "
                    f"{team_goal.team_goal_id} (team {team_id}): {e}",
                    exc_info=True
                )
                failures.append((owner_id, e))

        if failures:
            raise CascadeClosureError(
                f"Closing team goal {team_goal.team_goal_id} of team {team_id}",
                failures
            )

        team_goal.is_active = False
        team_goal.is_reminder_active = False
        team_goal.touch()
        await self.team_goals.save_goal(team_goal)

        logger.info(
            f"Closed team goal {team_goal.team_goal_id} of team {team_id} "
            f"and {closed_goals} aligned personal goal(s)"
        )
        return True

    async def _aligned_goal_owners(self, team_goal: TeamGoalDetail) -> List[str]:
        """
        Users whose aligned goals must close with the team goal.

        Current team members come from the roster. Without a service URL the
        roster cannot be read, so owners are taken from stored alignments.
        """
        team_id = team_goal.team_id
        service_url = await self.teams.get_service_url(team_id, team_goal.service_url)

        if service_url:
            members: List[TeamMember] = await self.roster.list_members(team_id, service_url)
            return [member.aad_object_id for member in members if member.aad_object_id]

        logger.warning(f"No service URL for team {team_id}, closing aligned goals from storage")
        aligned = await self.personal_goals.get_team_aligned_goals(team_id)
        seen: Set[str] = set()
        owners = []
        for goal in aligned:
            if goal.user_aad_object_id not in seen:
                seen.add(goal.user_aad_object_id)
                owners.append(goal.user_aad_object_id)
        return owners

    async def _close_member_goals(self, team_goal: TeamGoalDetail, user_aad_object_id: str) -> int:
        aligned = await self.personal_goals.get_user_aligned_goals(team_goal.team_id, user_aad_object_id)
        goals = [
            goal for goal in aligned
            if goal.is_aligned_to(team_goal.team_id, team_goal.team_goal_id)
        ]
        if not goals:
            return 0

        await self._close_goal_set(user_aad_object_id, goals)
        return len(goals)

    async def notify_personal_closed(self, goal: PersonalGoalDetail) -> Optional[bool]:
        """Send the final cycle-ended notice for a personal goal."""
        if self.dispatcher is None:
            return None
        return await self.dispatcher.notify_personal(goal, ReminderKind.EXPIRED)

    async def notify_team_closed(self, team_goal: TeamGoalDetail) -> Optional[bool]:
        if self.dispatcher is None:
            return None
        return await self.dispatcher.notify_team(team_goal, ReminderKind.EXPIRED)
