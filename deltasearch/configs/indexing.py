"""
Indexing configuration settings.

Segment storage location, build verbosity defaults, search limits and
the module that registers index definitions.

Dependencies: pydantic, pydantic_settings
System role: Search index configuration
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from deltasearch.configs.base import BaseSettings


class IndexingSettings(BaseSettings):
    """Index store and build configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="INDEXING_",
        case_sensitive=False,
        extra="ignore",
    )

    index_dir: Path = Field(
        default=Path(".deltasearch"),
        description="Directory holding core and delta segment files",
    )
    indexes_module: str | None = Field(
        default=None,
        description="Dotted module path that registers IndexDefinitions on import",
    )
    verbose: bool = Field(
        default=False,
        description="Surface index build output at INFO instead of DEBUG",
    )
    default_search_limit: int = Field(default=20, description="Default page size", ge=1)
    max_search_limit: int = Field(default=200, description="Upper bound on page size", ge=1)
