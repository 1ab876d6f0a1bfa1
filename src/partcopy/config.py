"""Configuration loading and Pydantic models for partcopy."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

DEFAULT_PART_SIZE = 10 * 1024 * 1024


class ServerConfig(BaseModel):
    """Server binding and runtime configuration."""

    host: str = "0.0.0.0"
    port: int = 8787
    log_level: str = "INFO"
    log_format: str = "text"
    debug: bool = False
    shutdown_timeout: int = 30


class CopyConfig(BaseModel):
    """Part planning configuration."""

    part_size: int = DEFAULT_PART_SIZE


class SourceConfig(BaseModel):
    """S3-compatible source store configuration."""

    endpoint_url: str = ""
    region: str = "auto"
    access_key_id: str = ""
    secret_access_key: str = ""
    use_path_style: bool = False


class DestinationConfig(BaseModel):
    """Destination multipart upload service configuration."""

    base_url: str = "http://localhost:8788"
    timeout_seconds: float = 60.0
    create_action: str = "create-multipart"
    upload_part_action: str = "upload-part"
    complete_action: str = "complete-multipart"

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class SQLiteSection(BaseModel):
    """Location of a SQLite database file."""

    path: str = "./data/partcopy.db"


class PartStoreConfig(BaseModel):
    """Part store configuration."""

    engine: str = "sqlite"
    sqlite: SQLiteSection = Field(default_factory=SQLiteSection)


class QueueConfig(BaseModel):
    """Work queue and worker pool configuration."""

    engine: str = "sqlite"
    sqlite: SQLiteSection = Field(
        default_factory=lambda: SQLiteSection(path="./data/queue.db")
    )
    workers: int = 4
    max_attempts: int = 5
    visibility_timeout_seconds: float = 300.0
    retry_delay_seconds: float = 2.0
    poll_interval_seconds: float = 0.5


class ObservabilityConfig(BaseModel):
    """Metrics configuration."""

    metrics: bool = True


class PartCopyConfig(BaseModel):
    """Top-level partcopy configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    copy_: CopyConfig = Field(default_factory=CopyConfig, alias="copy")
    source: SourceConfig = Field(default_factory=SourceConfig)
    destination: DestinationConfig = Field(default_factory=DestinationConfig)
    part_store: PartStoreConfig = Field(default_factory=PartStoreConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    model_config = {"populate_by_name": True}

    @property
    def part_size(self) -> int:
        """The configured part size in bytes."""
        return self.copy_.part_size


def _parse_server(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the server section from YAML data into a dict for Pydantic."""
    if data is None:
        return {}
    return {
        "host": data.get("host", "0.0.0.0"),
        "port": data.get("port", 8787),
        "log_level": data.get("log_level", "INFO"),
        "log_format": data.get("log_format", "text"),
        "debug": data.get("debug", False),
        "shutdown_timeout": data.get("shutdown_timeout", 30),
    }


def _parse_copy(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the copy section from YAML data."""
    if data is None:
        return {}
    return {"part_size": data.get("part_size", DEFAULT_PART_SIZE)}


def _parse_source(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the source section from YAML data."""
    if data is None:
        return {}
    return {
        "endpoint_url": data.get("endpoint_url", ""),
        "region": data.get("region", "auto"),
        "access_key_id": data.get("access_key_id", ""),
        "secret_access_key": data.get("secret_access_key", ""),
        "use_path_style": data.get("use_path_style", False),
    }


def _parse_destination(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the destination section from YAML data.

    Handles nested structure: destination.actions.create -> create_action, etc.
    """
    if data is None:
        return {}
    result: dict[str, Any] = {}
    if "base_url" in data:
        result["base_url"] = data["base_url"]
    if "timeout_seconds" in data:
        result["timeout_seconds"] = data["timeout_seconds"]
    actions = data.get("actions")
    if isinstance(actions, dict):
        if "create" in actions:
            result["create_action"] = actions["create"]
        if "upload_part" in actions:
            result["upload_part_action"] = actions["upload_part"]
        if "complete" in actions:
            result["complete_action"] = actions["complete"]
    return result


def _parse_part_store(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the part_store section from YAML data.

    Handles nested structure: part_store.sqlite.path -> sqlite.path
    """
    if data is None:
        return {}
    result: dict[str, Any] = {"engine": data.get("engine", "sqlite")}
    sqlite_section = data.get("sqlite")
    if isinstance(sqlite_section, dict):
        result["sqlite"] = SQLiteSection(
            path=sqlite_section.get("path", "./data/partcopy.db")
        )
    return result


def _parse_queue(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the queue section from YAML data."""
    if data is None:
        return {}
    result: dict[str, Any] = {"engine": data.get("engine", "sqlite")}
    sqlite_section = data.get("sqlite")
    if isinstance(sqlite_section, dict):
        result["sqlite"] = SQLiteSection(path=sqlite_section.get("path", "./data/queue.db"))
    for name in (
        "workers",
        "max_attempts",
        "visibility_timeout_seconds",
        "retry_delay_seconds",
        "poll_interval_seconds",
    ):
        if name in data:
            result[name] = data[name]
    return result


def _parse_observability(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the observability section from YAML data."""
    if data is None:
        return {}
    return {"metrics": data.get("metrics", True)}


def load_config(path: Path) -> PartCopyConfig:
    """Load a PartCopyConfig from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        A fully populated PartCopyConfig validated by Pydantic.

    Raises:
        FileNotFoundError: If the config file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
    """
    with open(path, "r") as fh:
        raw: dict[str, Any] = yaml.safe_load(fh) or {}

    return PartCopyConfig(
        server=ServerConfig(**_parse_server(raw.get("server"))),
        copy=CopyConfig(**_parse_copy(raw.get("copy"))),
        source=SourceConfig(**_parse_source(raw.get("source"))),
        destination=DestinationConfig(**_parse_destination(raw.get("destination"))),
        part_store=PartStoreConfig(**_parse_part_store(raw.get("part_store"))),
        queue=QueueConfig(**_parse_queue(raw.get("queue"))),
        observability=ObservabilityConfig(**_parse_observability(raw.get("observability"))),
    )
