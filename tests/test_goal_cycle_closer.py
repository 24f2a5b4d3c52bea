"""
Tests for GoalCycleCloser

Covers personal goal closure with notes, idempotence, team goal cascade
to aligned member goals, and partial cascade failures.
"""

from unittest.mock import AsyncMock

import pytest

from goal_tracker.exceptions import CascadeClosureError, StorageError
from goal_tracker.services.goal_cycle_closer import GoalCycleCloser
from tests.fixtures.goal_data import members


class TestClosePersonalGoal:
    @pytest.mark.asyncio
    async def test_closes_goal_and_notes(self, closer, storage, make_personal_goal, make_note):
        goal = make_personal_goal()
        await storage.personal_goals.save_goal(goal)
        await storage.notes.save_notes([
            make_note(note_id="note-1"),
            make_note(note_id="note-2"),
            make_note(goal_id="other-goal", note_id="note-3"),
        ])

        assert await closer.close_personal_goal(goal) is True

        stored = await storage.personal_goals.get_goal("user-1", "goal-1")
        assert stored.is_active is False
        assert stored.is_reminder_active is False

        closed_notes = await storage.notes.get_notes("user-1", "goal-1")
        assert {note.is_active for note in closed_notes} == {False}
        other_notes = await storage.notes.get_notes("user-1", "other-goal")
        assert other_notes[0].is_active is True

    @pytest.mark.asyncio
    async def test_closing_twice_writes_nothing_more(self, closer, storage, make_personal_goal, make_note):
        goal = make_personal_goal()
        await storage.personal_goals.save_goal(goal)
        await storage.notes.save_notes([make_note()])

        await closer.close_personal_goal(goal)
        goal_writes = storage.personal_goals.store.write_count
        note_writes = storage.notes.store.write_count

        stored = await storage.personal_goals.get_goal("user-1", "goal-1")
        await closer.close_personal_goal(stored)

        assert storage.personal_goals.store.write_count == goal_writes
        assert storage.notes.store.write_count == note_writes

    @pytest.mark.asyncio
    async def test_notes_written_before_goal(self, closer, storage, make_personal_goal, make_note):
        order = []
        storage.notes.save_notes = AsyncMock(side_effect=lambda notes: order.append("notes"))
        storage.personal_goals.save_goals = AsyncMock(side_effect=lambda goals: order.append("goals"))
        storage.notes.get_notes = AsyncMock(return_value=[make_note()])

        await closer.close_personal_goal(make_personal_goal())

        assert order == ["notes", "goals"]

    @pytest.mark.asyncio
    async def test_note_failure_leaves_goal_active(self, closer, storage, make_personal_goal, make_note):
        goal = make_personal_goal()
        await storage.personal_goals.save_goal(goal)
        await storage.notes.save_notes([make_note()])
        storage.notes.save_notes = AsyncMock(side_effect=StorageError("batch upsert failed"))

        with pytest.raises(StorageError):
            await closer.close_personal_goal(goal)

        stored = await storage.personal_goals.get_goal("user-1", "goal-1")
        assert stored.is_active is True

    @pytest.mark.asyncio
    async def test_requires_goal(self, closer):
        with pytest.raises(ValueError):
            await closer.close_personal_goal(None)


class TestCloseTeamGoal:
    @pytest.mark.asyncio
    async def test_cascades_to_aligned_member_goals(
        self, closer, storage, mock_notifier, make_team_goal, make_aligned_goal, make_personal_goal, make_note
    ):
        team_goal = make_team_goal()
        await storage.team_goals.save_goal(team_goal)
        mock_notifier.list_members.return_value = members("alice", "bob")

        for user in ("alice", "bob"):
            await storage.personal_goals.save_goal(make_aligned_goal(user, f"{user}-goal"))
            await storage.notes.save_notes([
                make_note(user=user, goal_id=f"{user}-goal", note_id=f"{user}-note-{i}") for i in range(2)
            ])
        unrelated = make_personal_goal(user="alice", goal_id="alice-personal")
        await storage.personal_goals.save_goal(unrelated)

        assert await closer.close_team_goal(team_goal) is True

        for user in ("alice", "bob"):
            goal = await storage.personal_goals.get_goal(user, f"{user}-goal")
            assert goal.is_active is False
            notes = await storage.notes.get_notes(user, f"{user}-goal")
            assert len(notes) == 2
            assert all(not note.is_active for note in notes)

        assert (await storage.personal_goals.get_goal("alice", "alice-personal")).is_active is True
        stored_team_goal = (await storage.team_goals.find_goals(team_id="team-1"))[0]
        assert stored_team_goal.is_active is False
        assert stored_team_goal.is_reminder_active is False

    @pytest.mark.asyncio
    async def test_closes_goals_aligned_through_compound_ids(
        self, closer, storage, mock_notifier, make_team_goal, make_aligned_goal
    ):
        team_goal = make_team_goal(goal_id="tg-2")
        mock_notifier.list_members.return_value = members("alice")
        await storage.personal_goals.save_goals([
            make_aligned_goal("alice", "multi", team_goal_id="tg-1,tg-2"),
            make_aligned_goal("alice", "other", team_goal_id="tg-1"),
        ])

        await closer.close_team_goal(team_goal)

        assert (await storage.personal_goals.get_goal("alice", "multi")).is_active is False
        assert (await storage.personal_goals.get_goal("alice", "other")).is_active is True

    @pytest.mark.asyncio
    async def test_member_failure_keeps_team_goal_active(
        self, closer, storage, mock_notifier, make_team_goal, make_aligned_goal
    ):
        team_goal = make_team_goal()
        await storage.team_goals.save_goal(team_goal)
        mock_notifier.list_members.return_value = members("alice", "bob", "carol")
        await storage.personal_goals.save_goals([
            make_aligned_goal(user, f"{user}-goal") for user in ("alice", "bob", "carol")
        ])

        original_save = storage.personal_goals.save_goals

        async def fail_for_bob(goals):
            if goals[0].user_aad_object_id == "bob":
                raise StorageError("batch upsert failed", table_name="PersonalGoalDetail", partition_key="bob")
            return await original_save(goals)

        storage.personal_goals.save_goals = fail_for_bob

        with pytest.raises(CascadeClosureError) as exc_info:
            await closer.close_team_goal(team_goal)

        assert exc_info.value.failed_ids == ["bob"]
        assert (await storage.personal_goals.get_goal("alice", "alice-goal")).is_active is False
        assert (await storage.personal_goals.get_goal("carol", "carol-goal")).is_active is False
        assert (await storage.personal_goals.get_goal("bob", "bob-goal")).is_active is True
        assert (await storage.team_goals.find_goals(team_id="team-1"))[0].is_active is True

    @pytest.mark.asyncio
    async def test_falls_back_to_stored_alignment_without_service_url(
        self, closer, storage, mock_notifier, make_team_goal, make_aligned_goal
    ):
        team_goal = make_team_goal(service_url=None)
        await storage.personal_goals.save_goals([
            make_aligned_goal("alice", "a1"),
            make_aligned_goal("alice", "a2"),
        ])

        await closer.close_team_goal(team_goal)

        mock_notifier.list_members.assert_not_awaited()
        assert (await storage.personal_goals.get_goal("alice", "a1")).is_active is False
        assert (await storage.personal_goals.get_goal("alice", "a2")).is_active is False

    @pytest.mark.asyncio
    async def test_already_closed_team_goal_is_a_no_op(self, closer, storage, mock_notifier, make_team_goal):
        team_goal = make_team_goal(is_active=False, is_reminder_active=False)

        assert await closer.close_team_goal(team_goal) is True

        mock_notifier.list_members.assert_not_awaited()
        assert storage.team_goals.store.write_count == 0


class TestClosureNotices:
    @pytest.mark.asyncio
    async def test_personal_notice_is_expired_reminder(self, closer, mock_notifier, make_personal_goal):
        assert await closer.notify_personal_closed(make_personal_goal()) is True

        conversation, card = mock_notifier.send_proactive.await_args.args
        assert conversation.conversation_id == "conversation-user-1"
        assert card["body"][1]["text"] == "Goal cycle has ended"

    @pytest.mark.asyncio
    async def test_no_dispatcher_sends_nothing(self, storage, mock_notifier, make_team_goal):
        closer = GoalCycleCloser(
            storage.personal_goals, storage.notes, storage.team_goals, storage.teams, roster=mock_notifier
        )
        assert await closer.notify_team_closed(make_team_goal()) is None
        mock_notifier.send_proactive.assert_not_awaited()
