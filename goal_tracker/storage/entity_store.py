"""
Entity Store

Typed key-value table abstraction partitioned by owner key. Two backends:
- TableEntityStore: Azure Table storage (azure-data-tables, async client)
- InMemoryEntityStore: process-local tables for development and tests

All writes are insert-or-replace. Batched writes are split per partition
and capped at the table service transaction limit.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from itertools import groupby
from typing import Any, Dict, Iterable, List, Optional, Tuple

from azure.core.exceptions import HttpResponseError, ResourceNotFoundError
from azure.data.tables import UpdateMode
from azure.data.tables.aio import TableServiceClient

from goal_tracker.exceptions import StorageError
from goal_tracker.storage.filters import TableFilter

logger = logging.getLogger(__name__)

# Azure Table transactions accept at most 100 operations for one partition.
MAX_BATCH_SIZE = 100

Entity = Dict[str, Any]


def partition_batches(entities: Iterable[Entity], batch_size: int = MAX_BATCH_SIZE) -> List[List[Entity]]:
    """Group entities by PartitionKey and chunk each group into transaction-sized batches."""
    ordered = sorted(entities, key=lambda e: e["PartitionKey"])
    batches = []
    for _, group in groupby(ordered, key=lambda e: e["PartitionKey"]):
        items = list(group)
        for start in range(0, len(items), batch_size):
            batches.append(items[start:start + batch_size])
    return batches


def scoped_filter(partition_key: Optional[str], where: Optional[TableFilter]) -> Optional[TableFilter]:
    if partition_key is None:
        return where
    partition = TableFilter.eq("PartitionKey", partition_key)
    return partition if where is None else partition & where


class EntityStore(ABC):
    """One table of entities keyed by (PartitionKey, RowKey)."""

    def __init__(self, table_name: str):
        self.table_name = table_name
        self._ready: Optional[asyncio.Future] = None

    async def ensure_ready(self) -> None:
        """
        Create backing resources once.

        Concurrent callers await the same initialization; a failed
        initialization is cleared so a later call can try again.
        """
        if self._ready is None:
            self._ready = asyncio.ensure_future(self._initialize())
        ready = self._ready
        try:
            await asyncio.shield(ready)
        except Exception:
            if self._ready is ready:
                self._ready = None
            raise

    @abstractmethod
    async def _initialize(self) -> None:
        ...

    @abstractmethod
    async def upsert(self, entity: Entity) -> bool:
        ...

    @abstractmethod
    async def upsert_batch(self, entities: List[Entity]) -> bool:
        ...

    @abstractmethod
    async def delete_batch(self, entities: List[Entity]) -> bool:
        ...

    @abstractmethod
    async def query(self, partition_key: Optional[str] = None, where: Optional[TableFilter] = None) -> List[Entity]:
        """Return entities matching the filter, optionally restricted to one partition."""

    @abstractmethod
    async def get_by_id(self, partition_key: str, row_key: str) -> Optional[Entity]:
        ...

    async def close(self) -> None:
        pass


class TableEntityStore(EntityStore):
    """Azure Table storage backend."""

    def __init__(self, service_client: TableServiceClient, table_name: str):
        super().__init__(table_name)
        self.service_client = service_client
        self.table_client = service_client.get_table_client(table_name)

    async def _initialize(self) -> None:
        await self.service_client.create_table_if_not_exists(self.table_name)
        logger.info(f"Table {self.table_name} ready")

    def _storage_error(self, operation: str, error: Exception, partition_key: Optional[str] = None) -> StorageError:
        logger.error(
            f"{operation} failed on table {self.table_name}"
            f"{f' partition {partition_key}' if partition_key else ''}: {error}",
            exc_info=True
        )
        return StorageError(
            f"{operation} failed on table {self.table_name}: {error}",
            table_name=self.table_name,
            partition_key=partition_key
        )

    async def upsert(self, entity: Entity) -> bool:
        await self.ensure_ready()
        try:
            await self.table_client.upsert_entity(entity=entity, mode=UpdateMode.REPLACE)
            return True
        except HttpResponseError as e:
            raise self._storage_error("upsert", e, entity.get("PartitionKey")) from e

    async def _submit(self, operation: str, entities: List[Entity]) -> bool:
        if not entities:
            return True
        await self.ensure_ready()
        for batch in partition_batches(entities):
            if operation == "upsert":
                actions = [("upsert", entity, {"mode": UpdateMode.REPLACE}) for entity in batch]
            else:
                actions = [("delete", entity) for entity in batch]
            try:
                await self.table_client.submit_transaction(actions)
            except HttpResponseError as e:
                raise self._storage_error(f"batch {operation}", e, batch[0]["PartitionKey"]) from e
        return True

    async def upsert_batch(self, entities: List[Entity]) -> bool:
        return await self._submit("upsert", entities)

    async def delete_batch(self, entities: List[Entity]) -> bool:
        return await self._submit("delete", entities)

    async def query(self, partition_key: Optional[str] = None, where: Optional[TableFilter] = None) -> List[Entity]:
        await self.ensure_ready()
        query_filter = scoped_filter(partition_key, where)
        try:
            if query_filter is None:
                pager = self.table_client.list_entities()
            else:
                expression, parameters = query_filter.to_query()
                pager = self.table_client.query_entities(query_filter=expression, parameters=parameters)
            return [dict(entity) async for entity in pager]
        except HttpResponseError as e:
            raise self._storage_error("query", e, partition_key) from e

    async def get_by_id(self, partition_key: str, row_key: str) -> Optional[Entity]:
        await self.ensure_ready()
        try:
            entity = await self.table_client.get_entity(partition_key=partition_key, row_key=row_key)
            return dict(entity)
        except ResourceNotFoundError:
            return None
        except HttpResponseError as e:
            raise self._storage_error("get", e, partition_key) from e

    async def close(self) -> None:
        await self.table_client.close()


class InMemoryEntityStore(EntityStore):
    """Process-local table. Entities are copied on the way in and out."""

    def __init__(self, table_name: str):
        super().__init__(table_name)
        self._rows: Dict[Tuple[str, str], Entity] = {}
        self.write_count = 0

    async def _initialize(self) -> None:
        logger.debug(f"In-memory table {self.table_name} ready")

    @staticmethod
    def _key(entity: Entity) -> Tuple[str, str]:
        return entity["PartitionKey"], entity["RowKey"]

    async def upsert(self, entity: Entity) -> bool:
        await self.ensure_ready()
        self._rows[self._key(entity)] = dict(entity)
        self.write_count += 1
        return True

    async def upsert_batch(self, entities: List[Entity]) -> bool:
        await self.ensure_ready()
        for batch in partition_batches(entities):
            for entity in batch:
                self._rows[self._key(entity)] = dict(entity)
            self.write_count += len(batch)
        return True

    async def delete_batch(self, entities: List[Entity]) -> bool:
        await self.ensure_ready()
        for batch in partition_batches(entities):
            for entity in batch:
                self._rows.pop(self._key(entity), None)
            self.write_count += len(batch)
        return True

    async def query(self, partition_key: Optional[str] = None, where: Optional[TableFilter] = None) -> List[Entity]:
        await self.ensure_ready()
        query_filter = scoped_filter(partition_key, where)
        return [
            dict(entity) for entity in self._rows.values()
            if query_filter is None or query_filter.matches(entity)
        ]

    async def get_by_id(self, partition_key: str, row_key: str) -> Optional[Entity]:
        await self.ensure_ready()
        entity = self._rows.get((partition_key, row_key))
        return dict(entity) if entity is not None else None

    def __len__(self) -> int:
        return len(self._rows)
