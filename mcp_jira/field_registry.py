"""
Field definition registry for Jira MCP server.

This module holds the catalog of requestable field paths per entity type
(issue, project, user, agile, system). Catalogs are declared as YAML files in
the ``field_definitions`` directory and loaded once at startup. Each catalog
gets a reverse index (path -> field id) so path lookups are O(1).
"""

from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple
from dataclasses import dataclass, field
from datetime import datetime, timezone
import pathlib
import types

import yaml
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

ENTITY_TYPES: Tuple[str, ...] = ("issue", "project", "user", "agile", "system")
FIELD_TYPES = frozenset({"object", "string", "array"})
FREQUENCIES: Tuple[str, ...] = ("high", "medium", "low")

DEFINITIONS_DIR = pathlib.Path(__file__).parent / "field_definitions"


class FieldDefinitionError(ValueError):
    """Raised when a field catalog is malformed or violates registry invariants."""


@dataclass(frozen=True)
class AccessPath:
    """One dot-notation route into a field's value."""
    path: str
    description: str = ""
    type: str = "string"
    frequency: str = "medium"


@dataclass(frozen=True)
class FieldDefinition:
    """A logical field of an entity type and every path reachable under it."""
    id: str
    name: str
    description: str = ""
    type: str = "string"
    access_paths: Tuple[AccessPath, ...] = ()
    examples: Tuple[str, ...] = ()
    common_usage: Tuple[Tuple[str, ...], ...] = ()


@dataclass(frozen=True)
class FieldInfo:
    """Resolved metadata for a known path."""
    field_id: str
    type: str
    description: str

    def to_dict(self) -> Dict[str, str]:
        return {"fieldId": self.field_id, "type": self.type, "description": self.description}


def path_root(path: str) -> str:
    """First dot-segment of a path with any ``[]`` array marker removed."""
    head = path.split(".", 1)[0]
    if head.endswith("[]"):
        head = head[:-2]
    return head


def build_path_index(entity_type: str, fields: Mapping[str, FieldDefinition]) -> Dict[str, str]:
    """
    Build the reverse lookup from access path to owning field id.

    Args:
        entity_type: Entity type the fields belong to (used in error messages)
        fields: Field definitions keyed by field id

    Returns:
        Dictionary mapping every registered path to its field id

    Raises:
        FieldDefinitionError: If a path is registered twice, does not start
            with its field id, or a field is keyed under a different id
    """
    index: Dict[str, str] = {}

    for field_id, definition in fields.items():
        if definition.id != field_id:
            raise FieldDefinitionError(
                f"{entity_type}: field keyed as '{field_id}' declares id '{definition.id}'")

        for access_path in definition.access_paths:
            path = access_path.path
            if path_root(path) != field_id:
                raise FieldDefinitionError(
                    f"{entity_type}: path '{path}' does not belong to field '{field_id}'")
            if path in index:
                raise FieldDefinitionError(
                    f"{entity_type}: path '{path}' registered by both '{index[path]}' and '{field_id}'")
            index[path] = field_id

    return index


@dataclass(frozen=True)
class ResourceDefinition:
    """
    Complete field schema for one entity type.

    ``path_index`` and ``total_fields`` are derived from ``fields`` and are
    rebuilt whenever a new definition is made with ``with_fields``. Both
    ``fields`` and ``path_index`` are read-only mappings.
    """
    entity_type: str
    fields: Mapping[str, FieldDefinition]
    version: str = "1.0.0"
    last_updated: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    path_index: Mapping[str, str] = field(init=False, repr=False)
    total_fields: int = field(init=False)

    def __post_init__(self):
        if self.entity_type not in ENTITY_TYPES:
            raise FieldDefinitionError(
                f"Unknown entity type '{self.entity_type}'. Supported types: {', '.join(ENTITY_TYPES)}")
        object.__setattr__(self, "fields", types.MappingProxyType(dict(self.fields)))
        object.__setattr__(self, "path_index",
                           types.MappingProxyType(build_path_index(self.entity_type, self.fields)))
        object.__setattr__(self, "total_fields", len(self.fields))

    @property
    def uri(self) -> str:
        return f"jira://{self.entity_type}/fields"

    def with_fields(self, fields: Mapping[str, FieldDefinition]) -> "ResourceDefinition":
        """Return a copy of this definition with new fields and a rebuilt index."""
        return ResourceDefinition(entity_type=self.entity_type, fields=fields, version=self.version)

    def access_path(self, path: str) -> Optional[AccessPath]:
        field_id = self.path_index.get(path)
        if field_id is None:
            return None
        for access_path in self.fields[field_id].access_paths:
            if access_path.path == path:
                return access_path
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Render the definition with the key names used in resource documents."""
        return {
            "uri": self.uri,
            "entityType": self.entity_type,
            "lastUpdated": self.last_updated,
            "version": self.version,
            "totalFields": self.total_fields,
            "fields": {
                field_id: {
                    "id": definition.id,
                    "name": definition.name,
                    "description": definition.description,
                    "type": definition.type,
                    "accessPaths": [
                        {"path": ap.path, "description": ap.description, "type": ap.type, "frequency": ap.frequency}
                        for ap in definition.access_paths
                    ],
                    "examples": list(definition.examples),
                    "commonUsage": [list(group) for group in definition.common_usage],
                }
                for field_id, definition in self.fields.items()
            },
            "pathIndex": dict(self.path_index),
        }


def parse_field_definition(field_id: str, raw: Mapping[str, Any]) -> FieldDefinition:
    """Build a FieldDefinition from one entry of a YAML catalog."""
    if not isinstance(raw, Mapping):
        raise FieldDefinitionError(f"Field '{field_id}' must be a mapping")

    field_type = raw.get("type", "string")
    if field_type not in FIELD_TYPES:
        raise FieldDefinitionError(f"Field '{field_id}' has invalid type '{field_type}'")

    access_paths = []
    for entry in raw.get("access_paths") or []:
        if "path" not in entry:
            raise FieldDefinitionError(f"Field '{field_id}' has an access path without 'path'")
        frequency = entry.get("frequency", "medium")
        if frequency not in FREQUENCIES:
            raise FieldDefinitionError(f"Path '{entry['path']}' has invalid frequency '{frequency}'")
        access_paths.append(AccessPath(
            path=str(entry["path"]),
            description=entry.get("description", ""),
            type=str(entry.get("type", "string")),
            frequency=frequency,
        ))

    return FieldDefinition(
        id=field_id,
        name=raw.get("name", field_id),
        description=raw.get("description", ""),
        type=field_type,
        access_paths=tuple(access_paths),
        examples=tuple(raw.get("examples") or ()),
        common_usage=tuple(tuple(group) for group in raw.get("common_usage") or ()),
    )


def load_resource_definition(path: pathlib.Path) -> ResourceDefinition:
    """
    Load one entity type's field catalog from a YAML file.

    Args:
        path: Path to the YAML catalog

    Returns:
        ResourceDefinition with its path index built

    Raises:
        FieldDefinitionError: If the document is malformed
    """
    with open(path) as f:
        document = yaml.safe_load(f)

    if not isinstance(document, dict) or "entity_type" not in document:
        raise FieldDefinitionError(f"{path.name}: expected a mapping with 'entity_type'")

    fields = {
        str(field_id): parse_field_definition(str(field_id), raw)
        for field_id, raw in (document.get("fields") or {}).items()
    }
    return ResourceDefinition(
        entity_type=document["entity_type"],
        fields=fields,
        version=str(document.get("version", "1.0.0")),
    )


class FieldRegistry:
    """
    Read-only lookup over the resource definitions of every entity type.

    The registry is immutable after construction and safe to share between
    concurrent tool calls.
    """

    def __init__(self, definitions: List[ResourceDefinition]):
        by_type: Dict[str, ResourceDefinition] = {}
        for definition in definitions:
            if definition.entity_type in by_type:
                raise FieldDefinitionError(f"Duplicate definition for entity type '{definition.entity_type}'")
            by_type[definition.entity_type] = definition
        self._definitions = by_type

    def entity_types(self) -> List[str]:
        """Registered entity types in canonical order."""
        return [entity_type for entity_type in ENTITY_TYPES if entity_type in self._definitions]

    def get(self, entity_type: str) -> Optional[ResourceDefinition]:
        definition = self._definitions.get(entity_type)
        if definition is None:
            logger.debug(f"No field definitions for entity type '{entity_type}'")
        return definition

    def is_known_path(self, entity_type: str, path: str) -> bool:
        definition = self._definitions.get(entity_type)
        return definition is not None and path in definition.path_index

    def resolve(self, entity_type: str, path: str) -> Optional[FieldInfo]:
        """Return the owning field's metadata for a known path, or None."""
        definition = self._definitions.get(entity_type)
        if definition is None:
            return None
        access_path = definition.access_path(path)
        if access_path is None:
            return None
        return FieldInfo(field_id=definition.path_index[path], type=access_path.type,
                         description=access_path.description)

    def frequency(self, entity_type: str, path: str) -> str:
        definition = self._definitions.get(entity_type)
        access_path = definition.access_path(path) if definition else None
        return access_path.frequency if access_path else "low"

    def all_paths(self, entity_type: str) -> Iterator[str]:
        """Yield every registered path of an entity type in declaration order."""
        definition = self._definitions.get(entity_type)
        if definition is None:
            return
        for definition_field in definition.fields.values():
            for access_path in definition_field.access_paths:
                yield access_path.path


def load_field_registry(directory: Optional[pathlib.Path] = None) -> FieldRegistry:
    """
    Load every ``*.yml`` catalog in a directory into a FieldRegistry.

    Args:
        directory: Catalog directory (defaults to the packaged definitions)

    Returns:
        FieldRegistry covering every entity type found

    Raises:
        FieldDefinitionError: If any catalog is invalid
    """
    directory = pathlib.Path(directory) if directory else DEFINITIONS_DIR
    definitions = [load_resource_definition(path) for path in sorted(directory.glob("*.yml"))]
    registry = FieldRegistry(definitions)
    logger.info(f"Loaded field definitions for: {', '.join(registry.entity_types())}")
    return registry
