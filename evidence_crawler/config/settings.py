from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Crawler configuration.

    Each field maps to the upper-cased environment variable of the same name
    (OPENAI_API_KEY, TAVILY_API_KEY, MAX_DEPTH, POSTGRES_HOST, ...). A .env file
    in the working directory is read too; real environment variables win.
    """

    # Semantic extraction service (OpenAI)
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_timeout: float = 60.0

    # Web search (Tavily)
    tavily_api_key: str = ""
    tavily_url: str = "https://api.tavily.com/search"
    search_timeout: float = 20.0
    search_max_results: int = 5

    # Fetch resolver timeouts
    fetch_timeout: float = 15.0
    render_timeout_ms: int = 30000
    archive_timeout: float = 10.0

    # Extraction bounds
    min_text_length: int = 300
    max_text_length: int = 60000
    max_references: int = 30
    chunk_char_budget: int = 6000

    # Crawl
    max_depth: int = 2
    recurse_from_references: bool = True

    # PostgreSQL
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "evidence_user"
    postgres_password: str = "evidence_pass"
    postgres_db: str = "evidence"
    postgres_pool_min: int = 1
    postgres_pool_max: int = 5
    postgres_command_timeout: float = 30.0
    database_url: Optional[str] = Field(default=None, validate_default=True)

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Ignore extra env vars

    @field_validator('max_depth', mode='before')
    @classmethod
    def non_negative_depth(cls, v):
        """Negative depth would disable even the seed"""
        return max(0, int(v))

    @field_validator('database_url', mode='before')
    @classmethod
    def assemble_dsn(cls, v, info):
        """DATABASE_URL wins; otherwise built from the POSTGRES_* parts"""
        if v:
            return v
        parts = info.data
        return (
            f"postgresql://{parts.get('postgres_user')}:{parts.get('postgres_password')}"
            f"@{parts.get('postgres_host')}:{parts.get('postgres_port')}/{parts.get('postgres_db')}"
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
