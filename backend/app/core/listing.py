"""
Pagination and sorting conventions shared by every list endpoint.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from fastapi import Query

from app.core.exceptions import ValidationError

DEFAULT_LIMIT = 50
MAX_LIMIT = 100


@dataclass(frozen=True)
class Page:
    limit: int = DEFAULT_LIMIT
    offset: int = 0

    def meta(self, total: int) -> Dict[str, Any]:
        return {
            "total": total,
            "limit": self.limit,
            "offset": self.offset,
            "hasMore": self.offset + self.limit < total,
        }


def make_page(limit: int = DEFAULT_LIMIT, offset: int = 0) -> Page:
    if limit < 1 or limit > MAX_LIMIT:
        raise ValidationError(f"Limit must be between 1 and {MAX_LIMIT}")
    if offset < 0:
        raise ValidationError("Offset must be a non-negative number")
    return Page(limit=limit, offset=offset)


def page_params(
    limit: int = Query(DEFAULT_LIMIT, description="Page size (1-100)"),
    offset: int = Query(0, description="Rows to skip"),
) -> Page:
    """FastAPI dependency reading ``limit``/``offset`` query parameters."""
    return make_page(limit, offset)


def resolve_sort_token(
    token: Optional[str], options: Dict[str, Sequence[Any]], default: str
) -> Tuple[str, List[Any]]:
    """Map a fixed sort token to ORDER BY clauses, falling back to ``default``."""
    key = token if token in options else default
    return key, list(options[key])


def resolve_field_sort(
    sort: Optional[str],
    columns: Dict[str, Any],
    default: str,
) -> Tuple[str, List[Any]]:
    """
    Map a ``field:direction`` pair to ORDER BY clauses.

    Unknown fields or directions fall back to ``default`` (itself a
    ``field:direction`` string) instead of failing the request.
    """
    parsed = _parse_field_sort(sort, columns)
    if parsed is None:
        parsed = _parse_field_sort(default, columns)
    field, direction = parsed
    column = columns[field]
    clause = column.desc() if direction == "desc" else column.asc()
    return f"{field}:{direction}", [clause]


def _parse_field_sort(
    sort: Optional[str], columns: Dict[str, Any]
) -> Optional[Tuple[str, str]]:
    if not sort:
        return None
    field, _, direction = sort.partition(":")
    direction = direction.lower()
    if field not in columns or direction not in ("asc", "desc"):
        return None
    return field, direction
