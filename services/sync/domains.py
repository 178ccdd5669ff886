"""Declarative domain table.

Every domain the engine mirrors is described by data in domains.yaml rather
than by hand-written code: one generic DomainSyncTask runs each entry.

Usage:
    from services.sync.domains import load_domains, build_records

    domains = load_domains()                   # bundled domains.yaml
    for domain in domains:
        print(domain.name, [s.cache_key for s in domain.sources])
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from core.errors import DomainConfigError, ErrorCodes, RecordShapeError
from core.paths import DEFAULT_DOMAINS_FILE
from services.sync.types import Identity

logger = logging.getLogger(__name__)

SHAPES = ("array", "object", "wrapped", "wrapped_array")
WRAPPED_SHAPES = ("wrapped", "wrapped_array")
DEFAULT_TIMESTAMP_FIELD = "synced_at"


@dataclass(frozen=True)
class DomainSource:
    """One cache key and the remote table it is upserted into."""

    cache_key: str
    table: str
    conflict_key: tuple[str, ...]
    shape: str = "array"
    wrap_field: str | None = None
    static_fields: dict[str, Any] = field(default_factory=dict)
    date_fields: tuple[str, ...] = ()
    timestamp_field: str | None = DEFAULT_TIMESTAMP_FIELD

    @property
    def on_conflict(self) -> str:
        """Conflict key in the comma-separated form the remote store expects."""
        return ",".join(self.conflict_key)

    @classmethod
    def from_config(cls, data: Any, where: str) -> "DomainSource":
        """Create a DomainSource from one YAML entry.

        Args:
            data: Parsed YAML mapping
            where: Location used in error messages

        Raises:
            DomainConfigError: If the entry is invalid
        """
        if not isinstance(data, dict):
            raise DomainConfigError(f"{where}: source must be a mapping")

        for key in ("cache_key", "table"):
            if not isinstance(data.get(key), str) or not data[key].strip():
                raise DomainConfigError(f"{where}: '{key}' must be a non-empty string")

        conflict_key = data.get("conflict_key")
        if isinstance(conflict_key, str):
            conflict_key = [part.strip() for part in conflict_key.split(",")]
        if not conflict_key or not all(isinstance(k, str) and k for k in conflict_key):
            raise DomainConfigError(f"{where}: 'conflict_key' must list at least one column")

        shape = data.get("shape", "array")
        if shape not in SHAPES:
            raise DomainConfigError(f"{where}: unknown shape '{shape}' (expected one of {', '.join(SHAPES)})")

        wrap_field = data.get("wrap_field")
        if shape in WRAPPED_SHAPES and not wrap_field:
            raise DomainConfigError(f"{where}: shape '{shape}' requires 'wrap_field'")

        static_fields = data.get("static_fields") or {}
        if not isinstance(static_fields, dict):
            raise DomainConfigError(f"{where}: 'static_fields' must be a mapping")

        date_fields = data.get("date_fields") or []
        if not isinstance(date_fields, list):
            raise DomainConfigError(f"{where}: 'date_fields' must be a list")

        # An explicit null means the source has no sync-timestamp column
        timestamp_field = data.get("timestamp_field", DEFAULT_TIMESTAMP_FIELD)

        return cls(
            cache_key=data["cache_key"],
            table=data["table"],
            conflict_key=tuple(conflict_key),
            shape=shape,
            wrap_field=wrap_field,
            static_fields=dict(static_fields),
            date_fields=tuple(date_fields),
            timestamp_field=timestamp_field,
        )


@dataclass(frozen=True)
class DomainConfig:
    """One independently synced category of user data."""

    name: str
    sources: tuple[DomainSource, ...]


def parse_domains(data: Any) -> list[DomainConfig]:
    """Validate a parsed domain table.

    Raises:
        DomainConfigError: If the table is malformed
    """
    if not isinstance(data, dict) or not isinstance(data.get("domains"), list):
        raise DomainConfigError("Domain table must be a mapping with a 'domains' list")

    domains: list[DomainConfig] = []
    seen: set[str] = set()

    for index, entry in enumerate(data["domains"]):
        if not isinstance(entry, dict):
            raise DomainConfigError(f"domains[{index}]: entry must be a mapping")

        name = entry.get("name")
        if not isinstance(name, str) or not name:
            raise DomainConfigError(f"domains[{index}]: 'name' must be a non-empty string")
        if name in seen:
            raise DomainConfigError(f"Duplicate domain name: {name}")
        seen.add(name)

        raw_sources = entry.get("sources")
        if not isinstance(raw_sources, list) or not raw_sources:
            raise DomainConfigError(f"{name}: 'sources' must be a non-empty list")

        sources = tuple(
            DomainSource.from_config(source, f"{name}.sources[{i}]") for i, source in enumerate(raw_sources)
        )
        domains.append(DomainConfig(name=name, sources=sources))

    return domains


def load_domains(path: Path | str | None = None) -> list[DomainConfig]:
    """Load and validate the domain table from YAML.

    Args:
        path: YAML file (defaults to the bundled domains.yaml)

    Returns:
        Domains in file order

    Raises:
        DomainConfigError: If the file is unreadable or invalid
    """
    domains_file = Path(path).expanduser() if path else DEFAULT_DOMAINS_FILE

    try:
        with open(domains_file) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise DomainConfigError(f"Cannot read domain table {domains_file}: {e}") from e
    except yaml.YAMLError as e:
        raise DomainConfigError(f"Invalid YAML in {domains_file}: {e}") from e

    domains = parse_domains(data)
    logger.debug(f"Loaded {len(domains)} domains from {domains_file}")
    return domains


# ==================== Record construction ====================


def parse_cached_value(source: DomainSource, raw: str) -> list[Any]:
    """Decode a cached value into the list of items it holds.

    Raises:
        RecordShapeError: If the value is not JSON or has the wrong shape
    """
    try:
        value = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise RecordShapeError(f"{source.cache_key} is not valid JSON: {e}", code=ErrorCodes.INVALID_JSON) from e

    if source.shape == "array":
        if not isinstance(value, list):
            raise RecordShapeError(f"{source.cache_key}: expected an array, got {type(value).__name__}")
        for i, item in enumerate(value):
            if not isinstance(item, dict):
                raise RecordShapeError(f"{source.cache_key}[{i}]: expected an object, got {type(item).__name__}")
        return value

    if source.shape == "object":
        if not isinstance(value, dict):
            raise RecordShapeError(f"{source.cache_key}: expected an object, got {type(value).__name__}")
        return [value]

    if source.shape == "wrapped_array":
        if not isinstance(value, list):
            raise RecordShapeError(f"{source.cache_key}: expected an array, got {type(value).__name__}")
        return value

    # wrapped: the whole value is one record's payload
    return [value]


def build_records(source: DomainSource, raw: str, identity: Identity, now: datetime) -> list[dict[str, Any]]:
    """Turn a cached value into remote records for source.

    Each record starts from the cached item (or ``{wrap_field: item}``), then
    gets the static fields, the identity's user_id, today's date in every
    date field and ``now`` in the timestamp field.

    Args:
        source: Domain source being synced
        raw: JSON-encoded cached value
        identity: User the records belong to
        now: Sync time (timezone-aware, UTC)

    Raises:
        RecordShapeError: If the value has the wrong shape or a record lacks
            a conflict-key column
    """
    items = parse_cached_value(source, raw)
    today = now.date().isoformat()
    synced_at = now.isoformat()

    records: list[dict[str, Any]] = []
    for item in items:
        record = {source.wrap_field: item} if source.shape in WRAPPED_SHAPES else dict(item)
        record.update(source.static_fields)
        record["user_id"] = identity.user_id
        for date_field in source.date_fields:
            record[date_field] = today
        if source.timestamp_field:
            record[source.timestamp_field] = synced_at

        missing = [k for k in source.conflict_key if record.get(k) is None]
        if missing:
            raise RecordShapeError(f"{source.cache_key}: record is missing conflict-key field(s) {', '.join(missing)}")

        records.append(record)

    return records
