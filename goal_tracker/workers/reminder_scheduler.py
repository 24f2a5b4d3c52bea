"""
Reminder Scheduler

Periodic pass over personal and team goals:
- Fetches goals due today (frequency day, expired yesterday, or ending in three days)
- Closes expired goals through the goal cycle closer
- Sends one reminder per owner (user or team) through the notification dispatcher

Each goal and each owner is an isolated unit: failures are logged and the
pass moves on. Owners reminded successfully are remembered for the rest of
the UTC day, so later passes on the same day only retry failed owners.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Set, Tuple

from goal_tracker.exceptions import TeamFanOutError
from goal_tracker.models.goals import PersonalGoalDetail, ReminderKind, TeamGoalDetail
from goal_tracker.services.goal_cycle_closer import GoalCycleCloser
from goal_tracker.services.notification_dispatcher import NotificationDispatcher
from goal_tracker.services.reminder_rules import (
    classify,
    personal_reminder_filter,
    team_reminder_filter,
    utc_today,
)
from goal_tracker.storage.providers import PersonalGoalStorageProvider, TeamGoalStorageProvider
from goal_tracker.workers.periodic import Clock, PeriodicWorker, group_by_owner, utc_now

logger = logging.getLogger(__name__)


@dataclass
class ReminderPassResult:
    """Counts for one scheduler pass."""
    today: date
    personal_candidates: int = 0
    team_candidates: int = 0
    reminders_sent: int = 0
    goals_closed: int = 0
    skipped: int = 0
    failures: int = 0


class ReminderScheduler(PeriodicWorker):
    name = "reminder-scheduler"

    def __init__(
        self,
        personal_goals: PersonalGoalStorageProvider,
        team_goals: TeamGoalStorageProvider,
        dispatcher: NotificationDispatcher,
        closer: GoalCycleCloser,
        cron_expression: str = "0 * * * *",
        clock: Clock = utc_now
    ):
        super().__init__(cron_expression, clock)
        self.personal_goals = personal_goals
        self.team_goals = team_goals
        self.dispatcher = dispatcher
        self.closer = closer

        self._ledger_date: Optional[date] = None
        self._reminded: Set[Tuple[str, str]] = set()

    def _roll_ledger(self, today: date) -> None:
        if self._ledger_date != today:
            self._ledger_date = today
            self._reminded.clear()

    def _already_sent(self, scope: str, owner_id: str) -> bool:
        return (scope, owner_id) in self._reminded

    def _mark_sent(self, scope: str, owner_id: str) -> None:
        self._reminded.add((scope, owner_id))

    async def run_once(self) -> ReminderPassResult:
        """Run one reminder pass for the clock's current UTC date."""
        today = utc_today(self.clock())
        self._roll_ledger(today)
        result = ReminderPassResult(today=today)

        logger.info(f"Reminder pass started for {today.isoformat()}")

        try:
            personal_goals = await self.personal_goals.find_goals(personal_reminder_filter(today))
        except Exception as e:
            logger.error(f"Personal goal reminder query failed: {e}", exc_info=True)
            result.failures += 1
            personal_goals = []

        result.personal_candidates = len(personal_goals)
        for owner_id, goals in group_by_owner(personal_goals, lambda g: g.user_aad_object_id).items():
            if self.stopping:
                logger.info("Shutdown requested, ending personal reminder pass early")
                break
            try:
                await self._process_personal_owner(owner_id, goals, today, result)
            except Exception as e:
                logger.error(f"Reminder processing failed for user {owner_id}: {e}", exc_info=True)
                result.failures += 1

        try:
            team_goals = await self.team_goals.find_goals(team_reminder_filter(today))
        except Exception as e:
            logger.error(f"Team goal reminder query failed: {e}", exc_info=True)
            result.failures += 1
            team_goals = []

        result.team_candidates = len(team_goals)
        for team_id, goals in group_by_owner(team_goals, lambda g: g.team_id).items():
            if self.stopping:
                logger.info("Shutdown requested, ending team reminder pass early")
                break
            try:
                await self._process_team(team_id, goals, today, result)
            except Exception as e:
                logger.error(f"Reminder processing failed for team {team_id}: {e}", exc_info=True)
                result.failures += 1

        logger.info(
            f"Reminder pass for {today.isoformat()} complete: "
            f"{result.personal_candidates} personal and {result.team_candidates} team candidate(s), "
            f"{result.reminders_sent} reminder(s) sent, {result.goals_closed} goal(s) closed, "
            f"{result.skipped} skipped, {result.failures} failure(s)"
        )
        return result

    @staticmethod
    def _split(goals, end_date_of, goal_id_of, today: date, result: ReminderPassResult):
        expired = []
        pending: List[Tuple[object, ReminderKind]] = []
        for goal in goals:
            try:
                kind = classify(end_date_of(goal), goal.reminder_frequency, today)
            except ValueError as e:
                logger.error(f"Cannot classify goal {goal_id_of(goal)} with end date {end_date_of(goal)!r}: {e}")
                result.failures += 1
                continue
            if kind == ReminderKind.EXPIRED:
                expired.append(goal)
            elif kind is not None:
                pending.append((goal, kind))
        return expired, pending

    async def _process_personal_owner(
        self,
        owner_id: str,
        goals: List[PersonalGoalDetail],
        today: date,
        result: ReminderPassResult
    ) -> None:
        expired, pending = self._split(
            goals, lambda g: g.end_date_utc, lambda g: g.personal_goal_id, today, result
        )

        closed = []
        for goal in expired:
            if self.stopping:
                return
            try:
                await self.closer.close_personal_goal(goal)
                closed.append(goal)
                result.goals_closed += 1
            except Exception as e:
                logger.error(
                    f"Failed to close personal goal {goal.personal_goal_id} of user {owner_id}: {e}",
                    exc_info=True
                )
                result.failures += 1

        if closed and not self._already_sent("personal-closed", owner_id):
            try:
                await self.closer.notify_personal_closed(closed[0])
                self._mark_sent("personal-closed", owner_id)
            except Exception as e:
                logger.error(f"Failed to send cycle-ended notice to user {owner_id}: {e}", exc_info=True)
                result.failures += 1

        if not pending or self.stopping:
            return
        if self._already_sent("personal", owner_id):
            result.skipped += 1
            return

        goal, kind = min(pending, key=lambda item: item[1].precedence)
        try:
            if await self.dispatcher.notify_personal(goal, kind):
                result.reminders_sent += 1
            else:
                result.skipped += 1
            self._mark_sent("personal", owner_id)
        except Exception as e:
            logger.error(
                f"Failed to send {kind.value} reminder for personal goal {goal.personal_goal_id} "
                f"of user {owner_id}: {e}",
                exc_info=True
            )
            result.failures += 1

    async def _process_team(
        self,
        team_id: str,
        goals: List[TeamGoalDetail],
        today: date,
        result: ReminderPassResult
    ) -> None:
        expired, pending = self._split(
            goals, lambda g: g.team_goal_end_date_utc, lambda g: g.team_goal_id, today, result
        )

        closed = []
        for team_goal in expired:
            if self.stopping:
                return
            try:
                await self.closer.close_team_goal(team_goal)
                closed.append(team_goal)
                result.goals_closed += 1
            except Exception as e:
                logger.error(
                    f"Failed to close team goal {team_goal.team_goal_id} of team {team_id}: {e}",
                    exc_info=True
                )
                result.failures += 1

        if closed and not self._already_sent("team-closed", team_id):
            await self._send_team(
                "team-closed", team_id, closed[0], ReminderKind.EXPIRED, result, self.closer.notify_team_closed
            )

        if not pending or self.stopping:
            return
        if self._already_sent("team", team_id):
            result.skipped += 1
            return

        team_goal, kind = min(pending, key=lambda item: item[1].precedence)
        await self._send_team(
            "team", team_id, team_goal, kind, result, lambda g: self.dispatcher.notify_team(g, kind)
        )

    async def _send_team(self, scope, team_id, team_goal, kind, result, send) -> None:
        try:
            if await send(team_goal):
                result.reminders_sent += 1
            else:
                result.skipped += 1
            self._mark_sent(scope, team_id)
        except TeamFanOutError as e:
            # Channel message went out; failed members are reported, not resent.
            self._mark_sent(scope, team_id)
            result.reminders_sent += 1
            result.failures += len(e.failures)
            logger.error(f"{kind.value} reminder for team {team_id} missed member(s) {', '.join(e.failed_ids)}")
        except Exception as e:
            logger.error(
                f"Failed to send {kind.value} reminder for team goal {team_goal.team_goal_id} "
                f"of team {team_id}: {e}",
                exc_info=True
            )
            result.failures += 1
