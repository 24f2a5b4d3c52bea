"""
Typed storage providers, one per goal table.

Providers convert between table entities and goal models and own the
filters for their table's common lookups.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from azure.data.tables.aio import TableServiceClient
from pydantic import ValidationError

from goal_tracker.models.goals import (
    PersonalGoalDetail,
    PersonalGoalNoteDetail,
    TeamDetail,
    TeamGoalDetail,
)
from goal_tracker.storage.entity_store import EntityStore, InMemoryEntityStore, TableEntityStore
from goal_tracker.storage.filters import TableFilter

logger = logging.getLogger(__name__)

PERSONAL_GOAL_TABLE = "PersonalGoalDetail"
PERSONAL_GOAL_NOTE_TABLE = "PersonalGoalNoteDetail"
TEAM_GOAL_TABLE = "TeamGoalDetail"
TEAM_DETAIL_TABLE = "TeamDetail"

ACTIVE = TableFilter.eq("IsActive", True) & TableFilter.eq("IsDeleted", False)
DELETED = TableFilter.eq("IsDeleted", True)


def valid_models(model, entities, table_name: str) -> list:
    """Convert entities to models, logging and skipping rows that fail validation."""
    models = []
    for entity in entities:
        try:
            models.append(model.from_entity(entity))
        except ValidationError as e:
            logger.warning(
                f"Skipping invalid row {entity.get('PartitionKey')}/{entity.get('RowKey')} "
                f"in table {table_name}: {e.error_count()} validation error(s)"
            )
    return models


class PersonalGoalStorageProvider:
    def __init__(self, store: EntityStore):
        self.store = store

    async def save_goal(self, goal: PersonalGoalDetail) -> bool:
        return await self.store.upsert(goal.to_entity())

    async def save_goals(self, goals: List[PersonalGoalDetail]) -> bool:
        return await self.store.upsert_batch([goal.to_entity() for goal in goals])

    async def delete_goals(self, goals: List[PersonalGoalDetail]) -> bool:
        return await self.store.delete_batch([goal.to_entity() for goal in goals])

    async def get_goal(self, user_aad_object_id: str, personal_goal_id: str) -> Optional[PersonalGoalDetail]:
        entity = await self.store.get_by_id(user_aad_object_id, personal_goal_id)
        return PersonalGoalDetail.from_entity(entity) if entity else None

    async def find_goals(
        self,
        where: Optional[TableFilter] = None,
        user_aad_object_id: Optional[str] = None
    ) -> List[PersonalGoalDetail]:
        entities = await self.store.query(user_aad_object_id, where)
        return valid_models(PersonalGoalDetail, entities, self.store.table_name)

    async def get_user_aligned_goals(self, team_id: str, user_aad_object_id: str) -> List[PersonalGoalDetail]:
        """Active personal goals of one user aligned to a team."""
        where = ACTIVE & TableFilter.eq("IsAligned", True) & TableFilter.eq("TeamId", team_id)
        return await self.find_goals(where, user_aad_object_id)

    async def get_team_aligned_goals(self, team_id: str) -> List[PersonalGoalDetail]:
        """Active personal goals of every user aligned to a team."""
        where = ACTIVE & TableFilter.eq("IsAligned", True) & TableFilter.eq("TeamId", team_id)
        return await self.find_goals(where)

    async def get_deleted_goals(self) -> List[PersonalGoalDetail]:
        return await self.find_goals(DELETED)


class PersonalGoalNoteStorageProvider:
    def __init__(self, store: EntityStore):
        self.store = store

    async def get_notes(
        self,
        user_aad_object_id: str,
        personal_goal_id: str,
        active_only: bool = False
    ) -> List[PersonalGoalNoteDetail]:
        where = TableFilter.eq("PersonalGoalId", personal_goal_id)
        if active_only:
            where = where & TableFilter.eq("IsActive", True)
        entities = await self.store.query(user_aad_object_id, where)
        return [PersonalGoalNoteDetail.from_entity(entity) for entity in entities]

    async def save_notes(self, notes: List[PersonalGoalNoteDetail]) -> bool:
        return await self.store.upsert_batch([note.to_entity() for note in notes])

    async def delete_notes(self, notes: List[PersonalGoalNoteDetail]) -> bool:
        return await self.store.delete_batch([note.to_entity() for note in notes])


class TeamGoalStorageProvider:
    def __init__(self, store: EntityStore):
        self.store = store

    async def save_goal(self, goal: TeamGoalDetail) -> bool:
        return await self.store.upsert(goal.to_entity())

    async def delete_goals(self, goals: List[TeamGoalDetail]) -> bool:
        return await self.store.delete_batch([goal.to_entity() for goal in goals])

    async def find_goals(
        self,
        where: Optional[TableFilter] = None,
        team_id: Optional[str] = None
    ) -> List[TeamGoalDetail]:
        entities = await self.store.query(team_id, where)
        return valid_models(TeamGoalDetail, entities, self.store.table_name)

    async def get_active_team_goals(self, team_id: str) -> List[TeamGoalDetail]:
        return await self.find_goals(ACTIVE, team_id)

    async def get_deleted_goals(self) -> List[TeamGoalDetail]:
        return await self.find_goals(DELETED)


class TeamStorageProvider:
    """Bot installations, keyed by team id."""

    def __init__(self, store: EntityStore):
        self.store = store

    async def get_team_detail(self, team_id: str) -> Optional[TeamDetail]:
        entity = await self.store.get_by_id(team_id, team_id)
        return TeamDetail.from_entity(entity) if entity else None

    async def save_team_detail(self, team: TeamDetail) -> bool:
        return await self.store.upsert(team.to_entity())

    async def delete_team_detail(self, team: TeamDetail) -> bool:
        return await self.store.delete_batch([team.to_entity()])

    async def get_service_url(self, team_id: str, fallback: Optional[str] = None) -> Optional[str]:
        """Service URL recorded at install time, else the given fallback."""
        team = await self.get_team_detail(team_id)
        if team is not None and team.service_url:
            return team.service_url
        return fallback


@dataclass
class StorageProviders:
    """All table providers plus the client that backs them."""
    personal_goals: PersonalGoalStorageProvider
    notes: PersonalGoalNoteStorageProvider
    team_goals: TeamGoalStorageProvider
    teams: TeamStorageProvider
    service_client: Optional[TableServiceClient] = None

    @property
    def stores(self) -> List[EntityStore]:
        return [
            self.personal_goals.store,
            self.notes.store,
            self.team_goals.store,
            self.teams.store,
        ]

    async def ensure_ready(self) -> None:
        for store in self.stores:
            await store.ensure_ready()

    async def close(self) -> None:
        for store in self.stores:
            await store.close()
        if self.service_client is not None:
            await self.service_client.close()


def create_storage_providers(connection_string: Optional[str] = None) -> StorageProviders:
    """
    Build providers backed by Azure Table storage, or in-memory tables
    when no connection string is configured.
    """
    if connection_string:
        service_client = TableServiceClient.from_connection_string(conn_str=connection_string)

        def make_store(table_name: str) -> EntityStore:
            return TableEntityStore(service_client, table_name)
    else:
        service_client = None
        make_store = InMemoryEntityStore

    logger.info(f"Creating {'table' if service_client else 'in-memory'} storage providers")

    return StorageProviders(
        personal_goals=PersonalGoalStorageProvider(make_store(PERSONAL_GOAL_TABLE)),
        notes=PersonalGoalNoteStorageProvider(make_store(PERSONAL_GOAL_NOTE_TABLE)),
        team_goals=TeamGoalStorageProvider(make_store(TEAM_GOAL_TABLE)),
        teams=TeamStorageProvider(make_store(TEAM_DETAIL_TABLE)),
        service_client=service_client,
    )
