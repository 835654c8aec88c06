"""
Repository Pattern - Storage abstraction layer

The crawl controller only sees PersistenceGateway; adapters hide storage:
- PostgresPersistenceGateway: asyncpg, evidence.* tables (schema.sql)
- InMemoryPersistenceGateway: dry runs and tests
"""
from .persistence_gateway import PersistenceGateway
from .postgres_gateway import PostgresPersistenceGateway
from .memory_gateway import InMemoryPersistenceGateway

__all__ = [
    'PersistenceGateway',
    'PostgresPersistenceGateway',
    'InMemoryPersistenceGateway',
]
