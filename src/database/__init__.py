"""
Database integration layer for cohort leveling.

Provides async PostgreSQL connectivity and the placement store contract with
in-memory and PostgreSQL implementations.
"""

from .connection import (
    PoolConfig,
    DatabasePool,
    DatabaseConnectionError,
    get_database_pool,
    close_database_pool,
    create_pool_config_from_settings,
    pool_config_from_url,
)

from .store import (
    PlacementStore,
    InMemoryStore,
    save_each,
)

from .queries import PostgresPlacementStore

__all__ = [
    # Connection
    'PoolConfig',
    'DatabasePool',
    'DatabaseConnectionError',
    'get_database_pool',
    'close_database_pool',
    'create_pool_config_from_settings',
    'pool_config_from_url',

    # Stores
    'PlacementStore',
    'InMemoryStore',
    'PostgresPlacementStore',
    'save_each',
]
