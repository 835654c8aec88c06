"""
Pytest configuration for evidence crawler tests.
"""

import pytest

from evidence_crawler.config.settings import Settings

# Configure pytest-asyncio
pytest_plugins = ('pytest_asyncio',)


def pytest_configure(config):
    """Configure pytest with asyncio marker."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as an async test."
    )


@pytest.fixture
def settings():
    """Settings isolated from any local .env"""
    return Settings(
        _env_file=None,
        openai_api_key='test-key',
        tavily_api_key='test-key',
        fetch_timeout=5.0,
        render_timeout_ms=5000,
        archive_timeout=5.0,
        max_depth=2,
    )
