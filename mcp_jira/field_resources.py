"""
Field catalog resources and field selection documentation for Jira MCP server.

Exposes each entity type's field catalog as an MCP resource
(``jira://{entity_type}/fields``) together with structured documentation of
how the ``fields`` argument is validated and applied.
"""

from typing import Any, Dict, List

from .field_presets import get_field_presets, get_preset_documentation
from .field_registry import FieldRegistry, ResourceDefinition

RESOURCE_INDEX_URI = "jira://fields"
RESOURCE_URI_TEMPLATE = "jira://{entity_type}/fields"

# Entity types whose tools send the selection upstream instead of filtering locally
UPSTREAM_SELECTION = {"issue"}


def get_resource_display_name(entity_type: str) -> str:
    return f"Jira {entity_type.capitalize()} Fields"


def get_resource_description(definition: ResourceDefinition) -> str:
    return (f"Complete field definitions for Jira {definition.entity_type} entities. "
            f"Includes {definition.total_fields} fields with nested access paths for comprehensive data access.")


def list_field_resources(registry: FieldRegistry) -> List[Dict[str, str]]:
    """
    List the field catalog resources available for discovery.

    Args:
        registry: Field registry to describe

    Returns:
        List of resource descriptors (uri, name, description, mimeType)
    """
    resources = []
    for entity_type in registry.entity_types():
        definition = registry.get(entity_type)
        resources.append({
            "uri": definition.uri,
            "name": get_resource_display_name(entity_type),
            "description": get_resource_description(definition),
            "mimeType": "application/json",
        })
    return resources


def get_field_selection_capabilities(entity_type: str) -> Dict[str, Any]:
    """
    Generate documentation of the ``fields`` argument for an entity type.

    Args:
        entity_type: Entity type (e.g., 'issue')

    Returns:
        Dictionary describing how field selection behaves
    """
    capabilities = {
        "description": "Field selection with nested access support",
        "parameter": "fields",
        "usage": "Pass a list of dot-notation paths from this catalog as the 'fields' argument",
        "rules": {
            "nesting": "Paths like 'status.statusCategory.key' return nested objects; "
                       "paths sharing a prefix are merged into one object",
            "custom_fields": "Custom field ids matching 'customfield_<number>' are always accepted",
            "missing_values": "Paths absent from a response are silently omitted",
            "invalid_paths": "Unknown paths are dropped with a warning and suggestions; "
                             "if every path is unknown the call fails without contacting Jira",
            "array_notation": "Paths with '[]' document array members; they cannot be projected client-side",
        },
        "presets": {
            "description": "Ready-made selections for common use cases",
            "available_presets": get_field_presets().get(entity_type, {}),
            "documentation": get_preset_documentation().get(entity_type, {}),
        },
    }

    if entity_type in UPSTREAM_SELECTION:
        capabilities["mode"] = "upstream"
        capabilities["mode_description"] = (
            "Top-level field names are sent to Jira's 'fields' parameter "
            "(e.g., 'status.name' requests 'status')")
    else:
        capabilities["mode"] = "client"
        capabilities["mode_description"] = "The response is fetched in full and projected to the requested paths"

    return capabilities


def read_field_resource(registry: FieldRegistry, entity_type: str) -> Dict[str, Any]:
    """
    Build the content of a ``jira://{entity_type}/fields`` resource.

    Args:
        registry: Field registry
        entity_type: Entity type from the resource URI

    Returns:
        The resource definition plus field selection documentation

    Raises:
        ValueError: If the entity type has no catalog
    """
    definition = registry.get(entity_type)
    if definition is None:
        supported = ", ".join(registry.entity_types())
        raise ValueError(f"Unknown entity type: {entity_type}. Supported types: {supported}")

    content = definition.to_dict()
    content["field_selection"] = get_field_selection_capabilities(entity_type)
    return content
