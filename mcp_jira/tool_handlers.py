"""
Tool handlers for Jira MCP server.

Each handler checks its arguments, validates the optional ``fields`` selection
against the field registry, calls the Jira REST API through an injected
``request`` function and shapes the result. Handlers return the same
``{"status_code", "body", "error"}`` dictionaries as ``request`` so the server
can serialize every outcome uniformly.
"""

from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass
from datetime import datetime, timezone
import functools

from mcp.server.fastmcp.utilities.logging import get_logger

from .field_filter import FieldFilterOptions, apply_field_filter
from .field_registry import FieldRegistry, path_root
from .field_validation import FieldPathValidator, ValidationResult

logger = get_logger(__name__)

RequestFn = Callable[..., Dict[str, Any]]


class JiraToolError(Exception):
    """Error reported back to the caller of a tool."""
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class ToolArgumentError(JiraToolError):
    """Raised when a tool argument has the wrong type or value."""
    status_code = 400


class FieldValidationError(JiraToolError):
    """Raised when every requested field path is invalid."""
    status_code = 400


@dataclass
class FieldSelection:
    """Fields to apply after validation, and the warning to attach if any were dropped."""
    fields: Optional[List[str]] = None
    warning: Optional[str] = None


# Argument checks

def require_string(value: Any, name: str) -> str:
    if not value or not isinstance(value, str):
        raise ToolArgumentError(f"{name} is required and must be a string")
    return value


def optional_string(value: Any, name: str) -> Optional[str]:
    if value is not None and not isinstance(value, str):
        raise ToolArgumentError(f"{name} must be a string")
    return value


def optional_bool(value: Any, name: str) -> Optional[bool]:
    if value is not None and not isinstance(value, bool):
        raise ToolArgumentError(f"{name} must be a boolean")
    return value


def require_id(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ToolArgumentError(f"{name} is required and must be a positive integer")
    return value


def optional_start_at(value: Any) -> Optional[int]:
    if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value < 0):
        raise ToolArgumentError("start_at must be a non-negative integer")
    return value


def optional_max_results(value: Any) -> Optional[int]:
    if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value <= 0):
        raise ToolArgumentError("max_results must be a positive integer")
    return value


def optional_field_list(value: Any) -> Optional[List[str]]:
    if value is None:
        return None
    if not isinstance(value, list):
        raise ToolArgumentError("fields must be an array of strings")
    if any(not isinstance(item, str) for item in value):
        raise ToolArgumentError("all fields must be strings")
    return value


# Messages and envelopes

def format_field_suggestions(suggestions: Optional[Dict[str, List[str]]]) -> str:
    """Render suggestions as one line per invalid path, prefixed by a newline."""
    if not suggestions:
        return ""
    lines = [f'Suggestions for "{path}": {", ".join(candidates)}' for path, candidates in suggestions.items()]
    return "\n" + "\n".join(lines)


def format_field_validation_warning(validation: ValidationResult) -> str:
    message = ("WARNING: Some fields were invalid and filtered out.\n"
               f"Invalid fields: {', '.join(validation.invalid_paths)}")
    if validation.suggestions:
        message += "\n" + format_field_suggestions(validation.suggestions)
    return message


def wrap_response_with_warnings(payload: Any, warning: Optional[str]) -> Any:
    if not warning:
        return payload
    return {"warning": warning, "data": payload}


def upstream_field_names(paths: List[str]) -> List[str]:
    """
    Reduce field paths to the top-level names Jira's ``fields`` parameter accepts.

    Examples:
        >>> upstream_field_names(["status.name", "status.id", "components[].name", "summary"])
        ['status', 'components', 'summary']
    """
    names: List[str] = []
    for path in paths:
        name = path_root(path)
        if name and name not in names:
            names.append(name)
    return names


def is_success(response: Dict[str, Any]) -> bool:
    return 200 <= response.get("status_code", 0) < 300 and not response.get("error")


def error_response(e: Exception) -> Dict[str, Any]:
    status_code = e.status_code if isinstance(e, JiraToolError) else 0
    return {"status_code": status_code, "body": None, "error": f"{e.__class__.__name__}: {e}"}


def tool_errors(fn):
    """Turn exceptions raised by a tool handler into error responses."""
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except JiraToolError as e:
            return error_response(e)
        except Exception as e:
            logger.error(f"Error in {fn.__name__}: {e.__class__.__name__}: {e}")
            return error_response(e)
    return wrapper


class JiraToolHandler:
    """Implements the Jira tools on top of a request function and a field registry."""

    def __init__(self, request: RequestFn, registry: FieldRegistry, log_filtering: bool = False):
        self.request = request
        self.registry = registry
        self.validator = FieldPathValidator(registry)
        self.log_filtering = log_filtering

    # Field selection

    def select_fields(self, entity_type: str, fields: Optional[List[str]]) -> FieldSelection:
        """
        Validate requested fields and decide which ones to apply.

        Args:
            entity_type: Entity type whose catalog applies
            fields: Requested field paths (None or empty means no filtering)

        Returns:
            FieldSelection with the fields to apply and an optional warning

        Raises:
            FieldValidationError: If every requested field is invalid
        """
        if not fields:
            return FieldSelection(fields=None)

        try:
            validation = self.validator.validate(entity_type, fields)
        except Exception as e:
            logger.error(f"Field validation error for {entity_type}: {e}")
            return FieldSelection(fields=fields)

        if validation.is_valid:
            return FieldSelection(fields=fields)

        if not validation.valid_paths:
            raise FieldValidationError(
                "All provided fields are invalid.\n"
                f"Invalid fields: {', '.join(validation.invalid_paths)}"
                + format_field_suggestions(validation.suggestions))

        return FieldSelection(fields=validation.valid_paths,
                              warning=format_field_validation_warning(validation))

    def _finish(self, response: Dict[str, Any], selection: FieldSelection,
                transform: Optional[Callable[[Any], Any]] = None) -> Dict[str, Any]:
        if not is_success(response):
            return response
        body = response.get("body")
        if transform is not None:
            body = transform(body)
        return dict(response, body=wrap_response_with_warnings(body, selection.warning))

    def _filter_options(self, entity_type: str) -> FieldFilterOptions:
        return FieldFilterOptions(entity_type=entity_type, log_filtering=self.log_filtering)

    def _client_filter(self, entity_type: str, selection: FieldSelection) -> Callable[[Any], Any]:
        options = self._filter_options(entity_type)
        return lambda body: apply_field_filter(body, selection.fields, options)

    def _search(self, path: str, params: Dict[str, Any], start_at: Any, max_results: Any,
                fields: Any) -> Dict[str, Any]:
        start_at = optional_start_at(start_at)
        max_results = optional_max_results(max_results)
        selection = self.select_fields("issue", optional_field_list(fields))

        params = dict(params)
        if start_at is not None:
            params["startAt"] = start_at
        if max_results is not None:
            params["maxResults"] = max_results
        if selection.fields:
            params["fields"] = ",".join(upstream_field_names(selection.fields))

        return self._finish(self.request(path, params=params), selection)

    # Issue tools

    @tool_errors
    def get_issue(self, issue_key: str, fields: Optional[List[str]] = None) -> Dict[str, Any]:
        issue_key = require_string(issue_key, "issue_key")
        selection = self.select_fields("issue", optional_field_list(fields))

        params = {}
        if selection.fields:
            params["fields"] = ",".join(upstream_field_names(selection.fields))

        return self._finish(self.request(f"rest/api/2/issue/{issue_key}", params=params), selection)

    @tool_errors
    def get_issue_transitions(self, issue_key: str) -> Dict[str, Any]:
        issue_key = require_string(issue_key, "issue_key")
        return self.request(f"rest/api/2/issue/{issue_key}/transitions")

    @tool_errors
    def search_issues(self, jql: str, start_at: Optional[int] = None, max_results: Optional[int] = None,
                      fields: Optional[List[str]] = None) -> Dict[str, Any]:
        jql = require_string(jql, "jql")
        return self._search("rest/api/2/search", {"jql": jql}, start_at, max_results, fields)

    @tool_errors
    def get_issue_worklogs(self, issue_key: str) -> Dict[str, Any]:
        issue_key = require_string(issue_key, "issue_key")
        return self.request(f"rest/api/2/issue/{issue_key}/worklog")

    @tool_errors
    def download_attachments(self, issue_key: str) -> Dict[str, Any]:
        issue_key = require_string(issue_key, "issue_key")

        def attachments(body):
            if not isinstance(body, dict) or not isinstance(body.get("fields"), dict):
                raise JiraToolError(f"Invalid issue response - missing fields for: {issue_key}")
            found = body["fields"].get("attachment")
            return found if isinstance(found, list) else []

        response = self.request(f"rest/api/2/issue/{issue_key}", params={"fields": "attachment"})
        return self._finish(response, FieldSelection(), attachments)

    # Project tools

    @tool_errors
    def get_all_projects(self, include_archived: Optional[bool] = None) -> Dict[str, Any]:
        include_archived = optional_bool(include_archived, "include_archived")
        params = {}
        if include_archived is not None:
            params["includeArchived"] = "true" if include_archived else "false"
        return self.request("rest/api/2/project", params=params)

    @tool_errors
    def get_project(self, project_key: str, fields: Optional[List[str]] = None) -> Dict[str, Any]:
        project_key = require_string(project_key, "project_key")
        selection = self.select_fields("project", optional_field_list(fields))
        response = self.request(f"rest/api/2/project/{project_key}")
        return self._finish(response, selection, self._client_filter("project", selection))

    @tool_errors
    def get_project_issues(self, project_key: str, start_at: Optional[int] = None,
                           max_results: Optional[int] = None, fields: Optional[List[str]] = None) -> Dict[str, Any]:
        project_key = require_string(project_key, "project_key")
        jql = 'project = "{}"'.format(project_key.replace('\\', '\\\\').replace('"', '\\"'))
        return self._search("rest/api/2/search", {"jql": jql}, start_at, max_results, fields)

    @tool_errors
    def get_project_versions(self, project_key: str) -> Dict[str, Any]:
        project_key = require_string(project_key, "project_key")
        return self.request(f"rest/api/2/project/{project_key}/versions")

    # User tools

    @tool_errors
    def get_current_user(self, fields: Optional[List[str]] = None) -> Dict[str, Any]:
        selection = self.select_fields("user", optional_field_list(fields))
        response = self.request("rest/api/2/myself", params={"expand": "groups,applicationRoles"})
        return self._finish(response, selection, self._client_filter("user", selection))

    @tool_errors
    def get_user_profile(self, username: str, fields: Optional[List[str]] = None) -> Dict[str, Any]:
        username = require_string(username, "username")
        selection = self.select_fields("user", optional_field_list(fields))
        response = self.request("rest/api/2/user",
                                params={"username": username, "expand": "groups,applicationRoles"})
        return self._finish(response, selection, self._client_filter("user", selection))

    # Agile tools

    @tool_errors
    def get_agile_boards(self, project_key: Optional[str] = None) -> Dict[str, Any]:
        project_key = optional_string(project_key, "project_key")
        params = {"projectKeyOrId": project_key} if project_key else {}
        return self.request("rest/agile/1.0/board", params=params)

    @tool_errors
    def get_board_issues(self, board_id: int, start_at: Optional[int] = None,
                         max_results: Optional[int] = None, fields: Optional[List[str]] = None) -> Dict[str, Any]:
        board_id = require_id(board_id, "board_id")
        return self._search(f"rest/agile/1.0/board/{board_id}/issue", {}, start_at, max_results, fields)

    @tool_errors
    def get_sprints_from_board(self, board_id: int) -> Dict[str, Any]:
        board_id = require_id(board_id, "board_id")
        return self.request(f"rest/agile/1.0/board/{board_id}/sprint")

    @tool_errors
    def get_sprint_issues(self, sprint_id: int, start_at: Optional[int] = None,
                          max_results: Optional[int] = None, fields: Optional[List[str]] = None) -> Dict[str, Any]:
        sprint_id = require_id(sprint_id, "sprint_id")
        return self._search(f"rest/agile/1.0/sprint/{sprint_id}/issue", {}, start_at, max_results, fields)

    @tool_errors
    def get_sprint(self, sprint_id: int) -> Dict[str, Any]:
        sprint_id = require_id(sprint_id, "sprint_id")
        return self.request(f"rest/agile/1.0/sprint/{sprint_id}")

    # System tools

    @tool_errors
    def search_fields(self, query: Optional[str] = None, fields: Optional[List[str]] = None) -> Dict[str, Any]:
        query = optional_string(query, "query")
        selection = self.select_fields("system", optional_field_list(fields))
        project = self._client_filter("system", selection)

        def matching(body):
            if query and isinstance(body, list):
                needle = query.lower()
                body = [item for item in body if isinstance(item, dict) and (
                    needle in str(item.get("name", "")).lower() or needle in str(item.get("id", "")).lower())]
            return project(body)

        return self._finish(self.request("rest/api/2/field"), selection, matching)

    @tool_errors
    def get_system_info(self, fields: Optional[List[str]] = None) -> Dict[str, Any]:
        selection = self.select_fields("system", optional_field_list(fields))
        response = self.request("rest/api/2/serverInfo")
        return self._finish(response, selection, self._client_filter("system", selection))

    @tool_errors
    def get_server_info(self, fields: Optional[List[str]] = None) -> Dict[str, Any]:
        selection = self.select_fields("system", optional_field_list(fields))
        project = self._client_filter("system", selection)

        def with_server_time(body):
            if isinstance(body, dict) and not body.get("serverTime"):
                body = dict(body, serverTime=datetime.now(timezone.utc).isoformat())
            return project(body)

        return self._finish(self.request("rest/api/2/serverInfo"), selection, with_server_time)

    # Field catalog tools

    @tool_errors
    def validate_fields(self, entity_type: str, fields: List[str]) -> Dict[str, Any]:
        entity_type = require_string(entity_type, "entity_type")
        fields = optional_field_list(fields) or []
        validation = self.validator.validate(entity_type, fields)
        return {"status_code": 200, "body": validation.to_dict(), "error": ""}
