"""Configuration models for testintel collection runs.

Preferred import pattern:

    from testintel.config import CollectConfig, ToolsConfig

    cfg = CollectConfig(repo_root=Path("."), packages=["./..."], db_path=Path("testintel.duckdb"))
"""

from testintel.config.models import (
    DEFAULT_DB_NAME,
    DEFAULT_TOOL_TIMEOUT_S,
    CollectConfig,
    ToolsConfig,
)

__all__ = [
    "DEFAULT_DB_NAME",
    "DEFAULT_TOOL_TIMEOUT_S",
    "CollectConfig",
    "ToolsConfig",
]
