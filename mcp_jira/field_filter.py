"""
Client-side field filtering for Jira MCP server.

Projects already-fetched Jira responses down to a list of dot-notation field
paths, keeping nested structure, for endpoints that have no native ``fields``
parameter.
"""

from typing import Any, Dict, List, Optional, Sequence
from dataclasses import dataclass
import copy

from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

_MISSING = object()


@dataclass
class FieldFilterOptions:
    """Configuration for field filtering."""
    entity_type: str = "issue"      # Entity type being filtered (for logging)
    respect_nesting: bool = True    # Rebuild nested objects instead of flat dotted keys
    log_filtering: bool = False     # Log the requested paths for each filtering call


def filter_fields(value: Any, paths: Optional[Sequence[str]], options: Optional[FieldFilterOptions] = None) -> Any:
    """
    Keep only the requested paths of a response value.

    Args:
        value: Response data (dict, list of dicts, or primitive)
        paths: Dot-notation paths to keep; empty or None means no filtering
        options: Filtering options

    Returns:
        A new value containing only the requested paths. Lists keep their
        length and order with every element projected. Primitives and None
        are returned unchanged.

    Examples:
        >>> filter_fields({"id": "T-1", "status": {"name": "Open", "id": "1"}}, ["status.name"])
        {'status': {'name': 'Open'}}
    """
    if not paths:
        return value
    if not isinstance(value, (dict, list)):
        return value

    options = options or FieldFilterOptions()
    if options.log_filtering:
        logger.info(f"Client-side filtering applied for {options.entity_type}: {list(paths)}")

    return _project(value, list(paths), options.respect_nesting)


def _project(value: Any, paths: List[str], respect_nesting: bool) -> Any:
    if isinstance(value, list):
        return [_project(item, paths, respect_nesting) for item in value]
    if isinstance(value, dict):
        return project_dict(value, paths, respect_nesting)
    return value


def project_dict(data: dict, paths: List[str], respect_nesting: bool = True) -> dict:
    """Build a new dict holding only the paths that resolve in ``data``."""
    result: Dict[str, Any] = {}

    for path in paths:
        found = extract_field_value(data, path)
        if found is _MISSING:
            continue
        found = copy.deepcopy(found)
        if respect_nesting:
            set_nested_value(result, path, found)
        else:
            result[path] = found

    return result


def extract_field_value(data: Any, path: str) -> Any:
    """
    Walk a dot-notation path through nested dicts.

    Supports simple keys ("summary"), nested keys ("status.statusCategory.key")
    and custom fields ("customfield_10001.value"). Array notation such as
    "components[].name" is not supported and never resolves.

    Returns:
        The value at the path (None included), or the module's missing
        sentinel when any hop is absent or not a dict
    """
    if "[]" in path:
        return _MISSING

    current = data
    for key in path.split("."):
        if not isinstance(current, dict) or key not in current:
            return _MISSING
        current = current[key]
    return current


def set_nested_value(target: dict, path: str, value: Any) -> None:
    """
    Write ``value`` at a dot-notation path, creating intermediate dicts.

    Existing intermediate dicts are reused so paths sharing a prefix merge
    into one nested object.
    """
    *parents, last = path.split(".")
    current = target
    for key in parents:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]
    current[last] = value


def apply_field_filter(value: Any, paths: Optional[Sequence[str]], options: Optional[FieldFilterOptions] = None) -> Any:
    """
    Filter a response value, falling back to the unfiltered value on failure.

    Errors are logged and the unfiltered value is returned.
    """
    try:
        return filter_fields(value, paths, options)
    except Exception as e:
        entity_type = options.entity_type if options else "unknown"
        logger.warning(f"Field filtering failed for {entity_type}, returning unfiltered response: {e}")
        return value
