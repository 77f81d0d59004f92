import os, json, yaml, pathlib
from typing import List, Optional
from urllib.parse import urljoin, urlparse

import httpx
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.utilities.logging import get_logger

from .field_presets import get_field_presets, get_preset_documentation
from .field_registry import load_field_registry
from .field_resources import RESOURCE_INDEX_URI, RESOURCE_URI_TEMPLATE, list_field_resources, read_field_resource
from .tool_handlers import JiraToolHandler

### Constants ###

VERSION = "2026.10.19.120000"

logger = get_logger(__name__)

# Constants from environment
JIRA_URL = os.environ['JIRA_URL'].rstrip('/') + '/'
JIRA_PERSONAL_TOKEN = os.environ['JIRA_PERSONAL_TOKEN']
JIRA_TIMEOUT = float(os.getenv('JIRA_TIMEOUT', '30'))
JIRA_SSL_VERIFY = os.getenv('JIRA_SSL_VERIFY', 'true').lower() not in ('false', '0', 'no')
RESPONSE_FORMAT = os.getenv('RESPONSE_FORMAT', 'yaml').lower()
JIRA_LOG_FIELD_FILTERING = os.getenv('JIRA_LOG_FIELD_FILTERING', 'false').lower() in ('true', '1', 'yes')
JIRA_FIELD_DEFINITIONS_DIR = os.getenv('JIRA_FIELD_DEFINITIONS_DIR')

if RESPONSE_FORMAT not in ('yaml', 'json'):
    logger.warning(f"Unknown RESPONSE_FORMAT '{RESPONSE_FORMAT}', using yaml")
    RESPONSE_FORMAT = 'yaml'

_parsed_url = urlparse(JIRA_URL)
if _parsed_url.scheme != 'https' and _parsed_url.hostname not in ('localhost', '127.0.0.1'):
    logger.warning(f"JIRA_URL '{JIRA_URL}' does not use HTTPS; the personal access token is sent unencrypted")


# Core
def request(path: str, method: str = 'get', data: dict = None, params: dict = None) -> dict:
    headers = {'Authorization': f'Bearer {JIRA_PERSONAL_TOKEN}', 'Content-Type': 'application/json',
               'Accept': 'application/json'}
    url = urljoin(JIRA_URL, path.lstrip('/'))

    try:
        response = httpx.request(method=method.lower(), url=url, json=data, params=params, headers=headers,
                                 timeout=JIRA_TIMEOUT, verify=JIRA_SSL_VERIFY)
        response.raise_for_status()

        body = None
        if response.content:
            try:
                body = response.json()
            except ValueError:
                body = response.text

        return {"status_code": response.status_code, "body": body, "error": ""}
    except httpx.HTTPStatusError as e:
        try:
            body = e.response.json()
        except ValueError:
            body = e.response.text

        return {"status_code": e.response.status_code, "body": body, "error": f"{e.__class__.__name__}: {e}"}
    except httpx.HTTPError as e:
        return {"status_code": 0, "body": None, "error": f"{e.__class__.__name__}: {e}"}


def yd(obj):
    # Allow direct Unicode output, prevent line wrapping for long lines, and avoid automatic key sorting.
    return yaml.safe_dump(obj, allow_unicode=True, sort_keys=False, width=4096)


def format_response(obj) -> str:
    if RESPONSE_FORMAT == 'json':
        return json.dumps(obj, indent=2, ensure_ascii=False, default=str)
    return yd(obj)


REGISTRY = load_field_registry(pathlib.Path(JIRA_FIELD_DEFINITIONS_DIR) if JIRA_FIELD_DEFINITIONS_DIR else None)
HANDLER = JiraToolHandler(request, REGISTRY, log_filtering=JIRA_LOG_FIELD_FILTERING)


# Tools
mcp = FastMCP("Jira MCP server")
logger.info(f"Starting MCP Jira version {VERSION}")
logger.info(f"Environment: JiraUrl='{JIRA_URL}', SslVerify={JIRA_SSL_VERIFY}, Timeout={JIRA_TIMEOUT}, "
            f"ResponseFormat='{RESPONSE_FORMAT}', FieldDefinitions='{JIRA_FIELD_DEFINITIONS_DIR or 'packaged'}'")

@mcp.tool()
def jira_get_issue(issue_key: str, fields: Optional[List[str]] = None) -> str:
    """Get a Jira issue by key

    Args:
        issue_key: Issue key (e.g. 'PROJ-123')
        fields: Optional list of issue field paths (e.g. ['summary', 'status.name', 'assignee.displayName']).
            Top-level names are sent to Jira, so 'status.name' returns the whole status object.
            See jira://issue/fields for valid paths.

    Returns:
        str: Response status code, body and error message
    """
    return format_response(HANDLER.get_issue(issue_key, fields))


@mcp.tool()
def jira_get_issue_transitions(issue_key: str) -> str:
    """Get the workflow transitions available for an issue

    Args:
        issue_key: Issue key (e.g. 'PROJ-123')

    Returns:
        str: Response status code, body and error message
    """
    return format_response(HANDLER.get_issue_transitions(issue_key))


@mcp.tool()
def jira_search_issues(jql: str, start_at: Optional[int] = None, max_results: Optional[int] = None,
                       fields: Optional[List[str]] = None) -> str:
    """Search issues with JQL

    Args:
        jql: JQL query (e.g. 'project = PROJ AND status = "In Progress"')
        start_at: Index of the first result (default: 0)
        max_results: Maximum number of results (default: Jira's page size)
        fields: Optional list of issue field paths. See jira://issue/fields for valid paths.

    Returns:
        str: Response status code, body and error message
    """
    return format_response(HANDLER.search_issues(jql, start_at, max_results, fields))


@mcp.tool()
def jira_get_issue_worklogs(issue_key: str) -> str:
    """Get the worklogs of an issue

    Args:
        issue_key: Issue key (e.g. 'PROJ-123')

    Returns:
        str: Response status code, body and error message
    """
    return format_response(HANDLER.get_issue_worklogs(issue_key))


@mcp.tool()
def jira_download_attachments(issue_key: str) -> str:
    """List the attachments of an issue with their download URLs

    Args:
        issue_key: Issue key (e.g. 'PROJ-123')

    Returns:
        str: Response status code, body (list of attachment metadata) and error message
    """
    return format_response(HANDLER.download_attachments(issue_key))


@mcp.tool()
def jira_get_all_projects(include_archived: Optional[bool] = None) -> str:
    """List all projects visible to the current user

    Args:
        include_archived: Whether to include archived projects

    Returns:
        str: Response status code, body and error message
    """
    return format_response(HANDLER.get_all_projects(include_archived))


@mcp.tool()
def jira_get_project(project_key: str, fields: Optional[List[str]] = None) -> str:
    """Get a project by key

    Args:
        project_key: Project key (e.g. 'PROJ')
        fields: Optional list of project field paths (e.g. ['key', 'name', 'lead.displayName']).
            See jira://project/fields for valid paths.

    Returns:
        str: Response status code, body and error message
    """
    return format_response(HANDLER.get_project(project_key, fields))


@mcp.tool()
def jira_get_project_issues(project_key: str, start_at: Optional[int] = None, max_results: Optional[int] = None,
                            fields: Optional[List[str]] = None) -> str:
    """List the issues of a project

    Args:
        project_key: Project key (e.g. 'PROJ')
        start_at: Index of the first result (default: 0)
        max_results: Maximum number of results (default: Jira's page size)
        fields: Optional list of issue field paths. See jira://issue/fields for valid paths.

    Returns:
        str: Response status code, body and error message
    """
    return format_response(HANDLER.get_project_issues(project_key, start_at, max_results, fields))


@mcp.tool()
def jira_get_project_versions(project_key: str) -> str:
    """List the versions of a project

    Args:
        project_key: Project key (e.g. 'PROJ')

    Returns:
        str: Response status code, body and error message
    """
    return format_response(HANDLER.get_project_versions(project_key))


@mcp.tool()
def jira_get_current_user(fields: Optional[List[str]] = None) -> str:
    """Get the user the personal access token belongs to

    Args:
        fields: Optional list of user field paths (e.g. ['displayName', 'emailAddress']).
            See jira://user/fields for valid paths.

    Returns:
        str: Response status code, body and error message
    """
    return format_response(HANDLER.get_current_user(fields))


@mcp.tool()
def jira_get_user_profile(username: str, fields: Optional[List[str]] = None) -> str:
    """Get a user profile by username

    Args:
        username: Jira username
        fields: Optional list of user field paths. See jira://user/fields for valid paths.

    Returns:
        str: Response status code, body and error message
    """
    return format_response(HANDLER.get_user_profile(username, fields))


@mcp.tool()
def jira_get_agile_boards(project_key: Optional[str] = None) -> str:
    """List agile boards, optionally restricted to a project

    Args:
        project_key: Optional project key or id

    Returns:
        str: Response status code, body and error message
    """
    return format_response(HANDLER.get_agile_boards(project_key))


@mcp.tool()
def jira_get_board_issues(board_id: int, start_at: Optional[int] = None, max_results: Optional[int] = None,
                          fields: Optional[List[str]] = None) -> str:
    """List the issues on an agile board

    Args:
        board_id: Board id
        start_at: Index of the first result (default: 0)
        max_results: Maximum number of results
        fields: Optional list of issue field paths. See jira://issue/fields for valid paths.

    Returns:
        str: Response status code, body and error message
    """
    return format_response(HANDLER.get_board_issues(board_id, start_at, max_results, fields))


@mcp.tool()
def jira_get_sprints_from_board(board_id: int) -> str:
    """List the sprints of an agile board

    Args:
        board_id: Board id

    Returns:
        str: Response status code, body and error message
    """
    return format_response(HANDLER.get_sprints_from_board(board_id))


@mcp.tool()
def jira_get_sprint_issues(sprint_id: int, start_at: Optional[int] = None, max_results: Optional[int] = None,
                           fields: Optional[List[str]] = None) -> str:
    """List the issues in a sprint

    Args:
        sprint_id: Sprint id
        start_at: Index of the first result (default: 0)
        max_results: Maximum number of results
        fields: Optional list of issue field paths. See jira://issue/fields for valid paths.

    Returns:
        str: Response status code, body and error message
    """
    return format_response(HANDLER.get_sprint_issues(sprint_id, start_at, max_results, fields))


@mcp.tool()
def jira_get_sprint(sprint_id: int) -> str:
    """Get a sprint by id

    Args:
        sprint_id: Sprint id

    Returns:
        str: Response status code, body and error message
    """
    return format_response(HANDLER.get_sprint(sprint_id))


@mcp.tool()
def jira_search_fields(query: Optional[str] = None, fields: Optional[List[str]] = None) -> str:
    """Search the field metadata of the Jira instance (system and custom fields)

    Args:
        query: Optional case-insensitive text matched against field names and ids
        fields: Optional list of field metadata paths (e.g. ['id', 'name', 'schema.type']).
            See jira://system/fields for valid paths.

    Returns:
        str: Response status code, body and error message
    """
    return format_response(HANDLER.search_fields(query, fields))


@mcp.tool()
def jira_get_system_info(fields: Optional[List[str]] = None) -> str:
    """Get Jira system information

    Args:
        fields: Optional list of server info paths (e.g. ['version', 'buildNumber']).
            See jira://system/fields for valid paths.

    Returns:
        str: Response status code, body and error message
    """
    return format_response(HANDLER.get_system_info(fields))


@mcp.tool()
def jira_get_server_info(fields: Optional[List[str]] = None) -> str:
    """Get Jira server information including the current server time

    Args:
        fields: Optional list of server info paths (e.g. ['baseUrl', 'serverTime']).
            See jira://system/fields for valid paths.

    Returns:
        str: Response status code, body and error message
    """
    return format_response(HANDLER.get_server_info(fields))


@mcp.tool()
def jira_validate_fields(entity_type: str, fields: List[str]) -> str:
    """Check field paths against a field catalog without calling Jira

    Args:
        entity_type: One of 'issue', 'project', 'user', 'agile', 'system'
        fields: Field paths to check

    Returns:
        str: Valid and invalid paths, suggestions for invalid ones, and metadata for valid ones
    """
    return format_response(HANDLER.validate_fields(entity_type, fields))


@mcp.tool()
def jira_field_presets(entity_type: Optional[str] = None) -> str:
    """Get ready-made field selections for common use cases

    Each preset is a list that can be passed as the 'fields' argument of the matching tools.

    Args:
        entity_type: Optional entity type to restrict the output to (e.g. 'issue')

    Returns:
        str: Presets and their descriptions, keyed by entity type
    """
    presets = get_field_presets()
    documentation = get_preset_documentation()
    if entity_type:
        if entity_type not in presets:
            return format_response({"status_code": 400, "body": None,
                                    "error": f"Unknown entity type '{entity_type}'. "
                                             f"Available entity types: {', '.join(presets)}"})
        presets = {entity_type: presets[entity_type]}

    body = {name: {"presets": presets[name], "documentation": documentation.get(name, {})} for name in presets}
    return format_response({"status_code": 200, "body": body, "error": ""})


# Resources
@mcp.resource(RESOURCE_INDEX_URI, mime_type="application/json")
def jira_field_resources() -> str:
    """List the available Jira field catalogs"""
    return json.dumps({"resources": list_field_resources(REGISTRY)}, indent=2, ensure_ascii=False)


@mcp.resource(RESOURCE_URI_TEMPLATE, mime_type="application/json")
def jira_field_resource(entity_type: str) -> str:
    """Field catalog for one Jira entity type, with every dot-notation access path"""
    return json.dumps(read_field_resource(REGISTRY, entity_type), indent=2, ensure_ascii=False)


def main():
    """Main entry point for the mcp-jira package."""
    mcp.run()

if __name__ == "__main__":
    main()
