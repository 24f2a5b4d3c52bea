"""
Team goal status roll-up.

Counts the progress of personal goals aligned to each active team goal.
A personal goal's TeamGoalId may hold several comma-joined ids; it counts
toward every team goal listed.
"""

import logging
from typing import Dict, List

from goal_tracker.models.goals import PersonalGoalStatus, TeamGoalStatus
from goal_tracker.storage.providers import PersonalGoalStorageProvider, TeamGoalStorageProvider

logger = logging.getLogger(__name__)


class TeamGoalStatusService:
    def __init__(self, personal_goals: PersonalGoalStorageProvider, team_goals: TeamGoalStorageProvider):
        self.personal_goals = personal_goals
        self.team_goals = team_goals

    async def get_team_goal_statuses(self, team_id: str) -> List[TeamGoalStatus]:
        team_goals = await self.team_goals.get_active_team_goals(team_id)
        statuses: Dict[str, TeamGoalStatus] = {
            goal.team_goal_id: TeamGoalStatus(team_goal_id=goal.team_goal_id, team_goal_name=goal.team_goal_name)
            for goal in team_goals
        }

        aligned = await self.personal_goals.get_team_aligned_goals(team_id)
        for goal in aligned:
            for team_goal_id in goal.aligned_team_goal_ids:
                status = statuses.get(team_goal_id)
                if status is None:
                    continue
                if goal.status == PersonalGoalStatus.COMPLETED:
                    status.completed_goal_count += 1
                elif goal.status == PersonalGoalStatus.IN_PROGRESS:
                    status.in_progress_goal_count += 1
                else:
                    status.not_started_goal_count += 1

        logger.debug(f"Computed status for {len(statuses)} team goal(s) of team {team_id} from {len(aligned)} aligned goal(s)")
        return list(statuses.values())
