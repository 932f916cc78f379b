"""
Browse/filter query builder for approved resources.

Semantics:
    - q: case-insensitive substring match on title OR description.
    - grades / types / curriculum: "any overlap" with the stored tag set.
    - topics: each selected topic is tested against all eleven topic columns,
      OR-ed together; a resource matches when any selected topic appears in
      any topic column.
    - sort: newest (default, created_at desc), oldest (created_at asc),
      popular (downloads desc). Ties are broken by id ascending.
    - Pagination: PAGE_SIZE items per 1-based page; pages past the end are
      empty; total_pages is at least 1.

Security:
    `status = 'approved'` is always applied by the repositories and cannot be
    influenced by any filter field.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from backend.resources.taxonomy import TOPIC_COLUMNS

PAGE_SIZE = 12
SORT_KEYS = ("newest", "oldest", "popular")
DEFAULT_SORT = "newest"
APPROVED = "approved"


def split_values(raw: Iterable[str] | str | None) -> Tuple[str, ...]:
    """Accept comma-separated and/or repeated parameters; drop blanks and duplicates."""
    if raw is None:
        return ()
    items = [raw] if isinstance(raw, str) else list(raw)
    out: List[str] = []
    for item in items:
        for part in str(item).split(","):
            value = part.strip()
            if value and value not in out:
                out.append(value)
    return tuple(out)


def _parse_page(raw: Any) -> int:
    try:
        page = int(raw)
    except (TypeError, ValueError):
        return 1
    return page if page >= 1 else 1


@dataclass(frozen=True)
class BrowseFilters:
    q: str = ""
    grades: Tuple[str, ...] = ()
    types: Tuple[str, ...] = ()
    topics: Tuple[str, ...] = ()
    curriculum: Tuple[str, ...] = ()
    sort: str = DEFAULT_SORT
    page: int = 1

    @classmethod
    def from_params(
        cls,
        *,
        q: Optional[str] = None,
        grades: Iterable[str] | str | None = None,
        types: Iterable[str] | str | None = None,
        topics: Iterable[str] | str | None = None,
        curriculum: Iterable[str] | str | None = None,
        sort: Optional[str] = None,
        page: Any = 1,
    ) -> "BrowseFilters":
        sort_key = (sort or "").strip().lower()
        return cls(
            q=(q or "").strip(),
            grades=split_values(grades),
            types=split_values(types),
            topics=split_values(topics),
            curriculum=split_values(curriculum),
            sort=sort_key if sort_key in SORT_KEYS else DEFAULT_SORT,
            page=_parse_page(page),
        )

    @classmethod
    def from_criteria(cls, criteria: Mapping[str, Any], *, sort: str = DEFAULT_SORT) -> "BrowseFilters":
        """Build filters from a featured list's stored filterCriteria."""
        return cls.from_params(
            grades=criteria.get("grades") or (),
            types=criteria.get("types") or (),
            topics=criteria.get("topics") or (),
            curriculum=criteria.get("curriculum") or (),
            sort=sort,
        )

    @property
    def offset(self) -> int:
        return (self.page - 1) * PAGE_SIZE

    def to_query(self) -> List[Tuple[str, str]]:
        """Encode as query pairs (comma-joined lists) for browse hrefs."""
        pairs: List[Tuple[str, str]] = []
        if self.q:
            pairs.append(("q", self.q))
        for name in ("grades", "types", "topics", "curriculum"):
            values = getattr(self, name)
            if values:
                pairs.append((name, ",".join(values)))
        if self.sort != DEFAULT_SORT:
            pairs.append(("sort", self.sort))
        return pairs


@dataclass
class BrowseResult:
    items: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = PAGE_SIZE

    @property
    def total_pages(self) -> int:
        return max(1, math.ceil(self.total / self.page_size))


# --- In-memory evaluation -------------------------------------------------------


def _overlaps(stored: Optional[Sequence[str]], selected: Sequence[str]) -> bool:
    return bool(set(stored or ()) & set(selected))


def matches(record: Mapping[str, Any], filters: BrowseFilters) -> bool:
    """Evaluate the filter predicates against one resource record."""
    if record.get("status") != APPROVED:
        return False
    if filters.q:
        needle = filters.q.lower()
        title = str(record.get("title") or "").lower()
        description = str(record.get("description") or "").lower()
        if needle not in title and needle not in description:
            return False
    if filters.grades and not _overlaps(record.get("target_grades"), filters.grades):
        return False
    if filters.types and not _overlaps(record.get("resource_types"), filters.types):
        return False
    if filters.topics and not any(_overlaps(record.get(col), filters.topics) for col in TOPIC_COLUMNS):
        return False
    if filters.curriculum and not _overlaps(record.get("topics_curriculum"), filters.curriculum):
        return False
    return True


def sort_records(records: Iterable[Dict[str, Any]], sort: str) -> List[Dict[str, Any]]:
    # Stable sorts applied from least to most significant key.
    ordered = sorted(records, key=lambda r: str(r.get("id") or ""))
    if sort == "oldest":
        return sorted(ordered, key=lambda r: str(r.get("created_at") or ""))
    if sort == "popular":
        return sorted(ordered, key=lambda r: int(r.get("downloads") or 0), reverse=True)
    return sorted(ordered, key=lambda r: str(r.get("created_at") or ""), reverse=True)


def paginate(records: Sequence[Dict[str, Any]], filters: BrowseFilters, *, limit: int = PAGE_SIZE) -> BrowseResult:
    start = (filters.page - 1) * limit
    return BrowseResult(
        items=list(records[start : start + limit]),
        total=len(records),
        page=filters.page,
        page_size=limit,
    )


# --- SQL compilation ------------------------------------------------------------

_ORDER_BY = {
    "newest": "created_at desc, id asc",
    "oldest": "created_at asc, id asc",
    "popular": "downloads desc, id asc",
}


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def compile_where(filters: BrowseFilters) -> Tuple[str, List[Any]]:
    """Return `(where_sql, params)` using psycopg `%s` placeholders."""
    clauses: List[str] = ["status = 'approved'"]
    params: List[Any] = []
    if filters.q:
        clauses.append("(title ilike %s or description ilike %s)")
        pattern = f"%{_escape_like(filters.q)}%"
        params.extend([pattern, pattern])
    if filters.grades:
        clauses.append("target_grades && %s::text[]")
        params.append(list(filters.grades))
    if filters.types:
        clauses.append("resource_types && %s::text[]")
        params.append(list(filters.types))
    if filters.topics:
        ors = " or ".join(f"{col} && %s::text[]" for col in TOPIC_COLUMNS)
        clauses.append(f"({ors})")
        params.extend([list(filters.topics)] * len(TOPIC_COLUMNS))
    if filters.curriculum:
        clauses.append("topics_curriculum && %s::text[]")
        params.append(list(filters.curriculum))
    return " and ".join(clauses), params


def compile_order(sort: str) -> str:
    return _ORDER_BY.get(sort, _ORDER_BY[DEFAULT_SORT])


__all__ = [
    "PAGE_SIZE",
    "SORT_KEYS",
    "BrowseFilters",
    "BrowseResult",
    "split_values",
    "matches",
    "sort_records",
    "paginate",
    "compile_where",
    "compile_order",
]
