"""
Field path validation for Jira MCP server.

Validates caller-supplied dot-notation field paths against the field registry
and suggests close matches for paths that are not recognized.
"""

from typing import Dict, List, Optional, Sequence, Tuple
from dataclasses import dataclass, field
import re

from mcp.server.fastmcp.utilities.logging import get_logger

from .field_registry import FieldInfo, FieldRegistry

logger = get_logger(__name__)

MAX_SUGGESTIONS = 3
MIN_SIMILARITY = 0.4
PREFIX_BOOST = 0.3
SUBSTRING_BOOST = 0.2

FREQUENCY_RANK = {"high": 0, "medium": 1, "low": 2}

CUSTOM_FIELD_PATTERN = re.compile(r"^customfield_\d+$")


@dataclass
class ValidationResult:
    """Outcome of validating one batch of field paths."""
    is_valid: bool
    valid_paths: List[str]
    invalid_paths: List[str]
    suggestions: Dict[str, List[str]] = field(default_factory=dict)
    path_info: Dict[str, FieldInfo] = field(default_factory=dict)
    validated: bool = True  # False when no catalog exists for the entity type

    def to_dict(self) -> dict:
        result = {
            "isValid": self.is_valid,
            "validPaths": list(self.valid_paths),
            "invalidPaths": list(self.invalid_paths),
            "suggestions": {path: list(paths) for path, paths in self.suggestions.items()},
        }
        if self.path_info:
            result["pathInfo"] = {path: info.to_dict() for path, info in self.path_info.items()}
        if not self.validated:
            result["validated"] = False
        return result


def is_custom_field_path(path: str) -> bool:
    """True for plain custom field ids such as ``customfield_10001``."""
    return bool(CUSTOM_FIELD_PATTERN.match(path))


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance between two strings, using a single rolling row."""
    if len(a) > len(b):
        a, b = b, a
    if not a:
        return len(b)

    previous = list(range(len(a) + 1))
    for i, char_b in enumerate(b, start=1):
        current = [i]
        for j, char_a in enumerate(a, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(current[j - 1] + 1, previous[j] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def calculate_similarity(a: str, b: str) -> float:
    """
    Case-insensitive similarity in [0, 1] derived from edit distance.

    Args:
        a: First string
        b: Second string

    Returns:
        1.0 for identical strings, 0.0 when nothing is shared
    """
    a = a.strip().lower()
    b = b.strip().lower()
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return max(0.0, 1.0 - levenshtein_distance(a, b) / max(len(a), len(b)))


def score_candidate(requested: str, candidate: str) -> float:
    """
    Score how plausible ``candidate`` is as the path the caller meant.

    Combines similarity of the full paths and of their final segments, then
    boosts candidates that extend or contain the requested text.
    """
    requested_lower = requested.strip().lower()
    candidate_lower = candidate.lower()

    full = calculate_similarity(requested_lower, candidate_lower)
    last = calculate_similarity(requested_lower.rsplit(".", 1)[-1], candidate_lower.rsplit(".", 1)[-1])
    score = max(full, last * 0.9)

    if requested_lower and candidate_lower.startswith(requested_lower):
        score += PREFIX_BOOST
    elif len(requested_lower) >= 3 and requested_lower in candidate_lower:
        score += SUBSTRING_BOOST

    return min(1.0, score)


def suggest_paths(requested: str, candidates: Sequence[Tuple[str, str]],
                  max_suggestions: int = MAX_SUGGESTIONS,
                  min_similarity: float = MIN_SIMILARITY) -> List[str]:
    """
    Rank known paths as replacements for an unknown one.

    Args:
        requested: The path that failed validation
        candidates: (path, frequency) pairs for every known path
        max_suggestions: Upper bound on returned suggestions
        min_similarity: Score a candidate needs to count as similar

    Returns:
        Up to ``max_suggestions`` paths, best first. When no candidate reaches
        ``min_similarity`` the best-ranked candidates are returned anyway.
    """
    if max_suggestions <= 0:
        return []

    ranked = sorted(
        ((score_candidate(requested, path), FREQUENCY_RANK.get(frequency, 2), path)
         for path, frequency in candidates),
        key=lambda item: (-round(item[0], 6), item[1], item[2]),
    )
    similar = [path for score, _, path in ranked if score >= min_similarity]
    if not similar:
        similar = [path for _, _, path in ranked]
    return similar[:max_suggestions]


class FieldPathValidator:
    """Validates field path batches against a FieldRegistry."""

    def __init__(self, registry: FieldRegistry, max_suggestions: int = MAX_SUGGESTIONS):
        self.registry = registry
        self.max_suggestions = max_suggestions

    def validate(self, entity_type: str, paths: Optional[Sequence[str]]) -> ValidationResult:
        """
        Partition requested paths into valid and invalid ones.

        Duplicates are kept in input order. Matching is exact: no trimming or
        normalization of dots or whitespace. When the registry has no catalog
        for ``entity_type`` every path is accepted unvalidated.

        Args:
            entity_type: Entity type whose catalog applies
            paths: Requested dot-notation paths

        Returns:
            ValidationResult covering every input path exactly once

        Raises:
            TypeError: If a path is not a string
        """
        paths = list(paths or [])
        for path in paths:
            if not isinstance(path, str):
                raise TypeError(f"Field paths must be strings, got {type(path).__name__}")

        if self.registry.get(entity_type) is None:
            return ValidationResult(is_valid=True, valid_paths=paths, invalid_paths=[], validated=False)

        valid_paths: List[str] = []
        invalid_paths: List[str] = []
        path_info: Dict[str, FieldInfo] = {}
        suggestions: Dict[str, List[str]] = {}
        candidates = None

        for path in paths:
            if self.registry.is_known_path(entity_type, path):
                valid_paths.append(path)
                info = self.registry.resolve(entity_type, path)
                if info is not None:
                    path_info[path] = info
            elif is_custom_field_path(path):
                valid_paths.append(path)
            else:
                invalid_paths.append(path)
                if path in suggestions:
                    continue
                if candidates is None:
                    candidates = [(known, self.registry.frequency(entity_type, known))
                                  for known in self.registry.all_paths(entity_type)]
                similar = suggest_paths(path, candidates, self.max_suggestions)
                if similar:
                    suggestions[path] = similar

        return ValidationResult(
            is_valid=not invalid_paths,
            valid_paths=valid_paths,
            invalid_paths=invalid_paths,
            suggestions=suggestions,
            path_info=path_info,
        )


def validate_field_paths(registry: FieldRegistry, entity_type: str,
                         paths: Optional[Sequence[str]]) -> ValidationResult:
    """Validate ``paths`` for ``entity_type`` with default suggestion settings."""
    return FieldPathValidator(registry).validate(entity_type, paths)
