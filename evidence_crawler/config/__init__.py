"""
Configuration module for settings and database connections.
"""
from .settings import Settings, get_settings
from .database import create_postgres_pool, pool_options

__all__ = [
    'Settings',
    'get_settings',
    'create_postgres_pool',
    'pool_options',
]
