"""
Predefined field selections for common use cases.

This module provides ready-to-use ``fields`` lists per entity type, so callers
can request compact responses without first reading the full field catalog.
"""

from typing import Dict, List


def get_field_presets() -> Dict[str, Dict[str, List[str]]]:
    """
    Get all preset field selections.

    Returns:
        Dictionary mapping entity type to preset name to field paths
    """
    return {
        "issue": get_issue_presets(),
        "project": get_project_presets(),
        "user": get_user_presets(),
        "agile": get_agile_presets(),
        "system": get_system_presets(),
    }


def get_issue_presets() -> Dict[str, List[str]]:
    """
    Issue presets - triage, tracking and ownership views.

    Returns:
        Preset name to issue field paths
    """
    return {
        "basic": ["summary", "status.name", "assignee.displayName"],
        "detailed": ["summary", "status.name", "status.statusCategory.key", "assignee.displayName",
                     "reporter.displayName", "priority.name", "issuetype.name", "created", "updated"],
        "planning": ["summary", "status.statusCategory.key", "fixVersions[].name", "duedate", "labels"],
    }


def get_project_presets() -> Dict[str, List[str]]:
    """
    Project presets - identity and ownership.

    Returns:
        Preset name to project field paths
    """
    return {
        "basic": ["key", "name", "projectTypeKey"],
        "detailed": ["key", "name", "description", "lead.displayName", "projectCategory.name", "url"],
    }


def get_user_presets() -> Dict[str, List[str]]:
    """
    User presets - profile views.

    Returns:
        Preset name to user field paths
    """
    return {
        "basic": ["name", "displayName", "emailAddress"],
        "detailed": ["name", "displayName", "emailAddress", "active", "timeZone"],
        "custom": ["displayName", "groups", "avatarUrls"],
    }


def get_agile_presets() -> Dict[str, List[str]]:
    """
    Agile presets - boards and sprints.

    Returns:
        Preset name to agile field paths
    """
    return {
        "basic": ["board.name", "sprint.name", "sprint.state"],
        "detailed": ["board.id", "board.name", "board.type", "sprint.id", "sprint.name", "sprint.state",
                     "sprint.startDate", "sprint.endDate"],
    }


def get_system_presets() -> Dict[str, List[str]]:
    """
    System presets - server info and field metadata.

    Returns:
        Preset name to system field paths
    """
    return {
        "basic": ["baseUrl", "version", "serverTime"],
        "detailed": ["baseUrl", "version", "serverTime", "buildNumber", "serverTitle"],
        "build": ["version", "buildNumber", "buildDate", "scmInfo", "deploymentType"],
        "field_search": ["id", "name", "custom", "schema.type", "schema.system"],
    }


def get_preset_documentation() -> Dict[str, Dict[str, str]]:
    """
    Get documentation for all presets.

    Returns:
        Entity type to preset name to description
    """
    return {
        "issue": {
            "basic": "Summary, status name and assignee",
            "detailed": "Basic plus status category, reporter, priority, type and timestamps",
            "planning": "Summary, status category, fix versions, due date and labels",
        },
        "project": {
            "basic": "Project key, name and type",
            "detailed": "Key, name, description, lead, category and URL",
        },
        "user": {
            "basic": "Username, display name and email",
            "detailed": "Basic plus active flag and time zone",
            "custom": "Display name, group memberships and avatars",
        },
        "agile": {
            "basic": "Board name, sprint name and state",
            "detailed": "Board identity plus sprint identity, state and dates",
        },
        "system": {
            "basic": "Base URL, version and server time",
            "detailed": "Basic plus build number and server title",
            "build": "Version and build details",
            "field_search": "Field id, name, custom flag and schema type (for jira_search_fields)",
        },
    }


def apply_preset(entity_type: str, preset_name: str) -> List[str]:
    """
    Get the field paths of a specific preset.

    Args:
        entity_type: Entity type the preset belongs to
        preset_name: Name of the preset to retrieve

    Returns:
        List of field paths

    Raises:
        ValueError: If entity type or preset name is not found
    """
    presets = get_field_presets()

    if entity_type not in presets:
        available = ", ".join(presets.keys())
        raise ValueError(f"Unknown entity type '{entity_type}'. Available entity types: {available}")

    if preset_name not in presets[entity_type]:
        available = ", ".join(presets[entity_type].keys())
        raise ValueError(f"Unknown preset '{preset_name}' for {entity_type}. Available presets: {available}")

    return list(presets[entity_type][preset_name])
