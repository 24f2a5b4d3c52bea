from .entity_store import EntityStore, InMemoryEntityStore, TableEntityStore, MAX_BATCH_SIZE
from .filters import TableFilter
from .providers import (
    PersonalGoalNoteStorageProvider,
    PersonalGoalStorageProvider,
    StorageProviders,
    TeamGoalStorageProvider,
    TeamStorageProvider,
    create_storage_providers,
)

__all__ = [
    'EntityStore', 'InMemoryEntityStore', 'TableEntityStore', 'MAX_BATCH_SIZE',
    'TableFilter', 'PersonalGoalNoteStorageProvider', 'PersonalGoalStorageProvider',
    'StorageProviders', 'TeamGoalStorageProvider', 'TeamStorageProvider',
    'create_storage_providers'
]
