"""
Deletion Sweeper

Permanently removes goals that users already soft-deleted (IsDeleted=true),
together with the notes of deleted personal goals. Runs on its own slower
schedule and performs no writes when nothing is marked deleted.
"""

import logging
from dataclasses import dataclass

from goal_tracker.storage.providers import (
    PersonalGoalNoteStorageProvider,
    PersonalGoalStorageProvider,
    TeamGoalStorageProvider,
)
from goal_tracker.workers.periodic import Clock, PeriodicWorker, group_by_owner, utc_now

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    personal_goals_deleted: int = 0
    notes_deleted: int = 0
    team_goals_deleted: int = 0
    failures: int = 0


class DeletionSweeper(PeriodicWorker):
    name = "deletion-sweeper"

    def __init__(
        self,
        personal_goals: PersonalGoalStorageProvider,
        notes: PersonalGoalNoteStorageProvider,
        team_goals: TeamGoalStorageProvider,
        cron_expression: str = "0 0 * * 0",
        clock: Clock = utc_now
    ):
        super().__init__(cron_expression, clock)
        self.personal_goals = personal_goals
        self.notes = notes
        self.team_goals = team_goals

    async def run_once(self) -> SweepResult:
        result = SweepResult()

        deleted_personal = await self.personal_goals.get_deleted_goals()
        for owner_id, goals in group_by_owner(deleted_personal, lambda g: g.user_aad_object_id).items():
            if self.stopping:
                break
            try:
                notes = []
                for goal in goals:
                    notes.extend(await self.notes.get_notes(owner_id, goal.personal_goal_id))
                if notes:
                    await self.notes.delete_notes(notes)
                await self.personal_goals.delete_goals(goals)
                result.notes_deleted += len(notes)
                result.personal_goals_deleted += len(goals)
            except Exception as e:
                logger.error(f"Failed to purge deleted goals of user {owner_id}: {e}", exc_info=True)
                result.failures += 1

        deleted_team = await self.team_goals.get_deleted_goals()
        for team_id, goals in group_by_owner(deleted_team, lambda g: g.team_id).items():
            if self.stopping:
                break
            try:
                await self.team_goals.delete_goals(goals)
                result.team_goals_deleted += len(goals)
            except Exception as e:
                logger.error(f"Failed to purge deleted goals of team {team_id}: {e}", exc_info=True)
                result.failures += 1

        logger.info(
            f"Deletion sweep complete: {result.personal_goals_deleted} personal goal(s), "
            f"{result.notes_deleted} note(s), {result.team_goals_deleted} team goal(s) deleted, "
            f"{result.failures} failure(s)"
        )
        return result
