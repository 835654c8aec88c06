"""
asyncpg pool construction for the PostgreSQL persistence gateway.

The DSN is Settings.database_url, which is either DATABASE_URL verbatim or
assembled from the POSTGRES_* variables.
"""
import logging
from typing import Optional

import asyncpg

from .settings import Settings, get_settings

logger = logging.getLogger(__name__)


def pool_options(settings: Settings) -> dict:
    """Keyword arguments for asyncpg.create_pool"""
    return {
        'dsn': settings.database_url,
        'min_size': settings.postgres_pool_min,
        'max_size': max(settings.postgres_pool_min, settings.postgres_pool_max),
        'command_timeout': settings.postgres_command_timeout,
    }


async def create_postgres_pool(settings: Optional[Settings] = None) -> asyncpg.Pool:
    settings = settings or get_settings()
    options = pool_options(settings)
    logger.info(
        f"🐘 Connecting to PostgreSQL at {settings.postgres_host}:{settings.postgres_port}/"
        f"{settings.postgres_db} (pool {options['min_size']}-{options['max_size']})"
    )
    return await asyncpg.create_pool(**options)
