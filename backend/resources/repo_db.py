"""
Postgres-backed repository for resources, featured lists and profiles.

Design:
- Minimal psycopg3 usage; each call opens a short-lived connection.
- Returns plain dicts (snake_case columns) so services stay ORM-free.
- Tag dimensions are `text[]`; attachments, external links and featured-list
  criteria are `jsonb`.

Concurrency:
- Download counts are bumped with a single `update ... returning`.
- Featured-list activation is a conditional update that only succeeds while
  fewer than `max_active` other lists are active (compare-and-set).
- Reorder rewrites every display_order inside one transaction.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple
import logging
import os

from backend.identity_access.domain import PROFILE_COLUMNS
from backend.resources.browse import BrowseFilters, BrowseResult, PAGE_SIZE, compile_order, compile_where
from backend.resources.errors import ActiveListLimitError, PersistenceError, UsernameTakenError
from backend.resources.taxonomy import TOPIC_COLUMNS

try:
    import psycopg
    from psycopg.types.json import Jsonb
    HAVE_PSYCOPG = True
except Exception:  # pragma: no cover - optional in some dev envs
    psycopg = None  # type: ignore
    Jsonb = None  # type: ignore
    HAVE_PSYCOPG = False
else:  # pragma: no cover - import errors handled above
    try:
        from psycopg.errors import UniqueViolation  # type: ignore
    except Exception:  # pragma: no cover - fallback when errors module unavailable
        UniqueViolation = None  # type: ignore

logger = logging.getLogger("corner.resources.repo")

_UNSET = object()


def _dsn() -> str:
    for name in ("RESOURCES_DATABASE_URL", "DATABASE_URL", "SUPABASE_DB_URL"):
        dsn = os.getenv(name)
        if dsn:
            return dsn
    raise RuntimeError("Database DSN unavailable for DBResourcesRepo")


_TS = """to_char({col} at time zone 'utc', 'YYYY-MM-DD"T"HH24:MI:SS.US"+00:00"')"""

_SCALAR_COLUMNS: Tuple[str, ...] = (
    "slug",
    "user_id",
    "title",
    "short_description",
    "description",
    "file_url",
    "file_size",
    "file_type",
    "preview_image_url",
    "credit_organization",
    "credit_other",
    "copyright_verified",
)
_ARRAY_COLUMNS: Tuple[str, ...] = ("additional_images", "target_grades", "resource_types") + TOPIC_COLUMNS
_JSON_COLUMNS: Tuple[str, ...] = ("attachments", "external_links")
_WRITABLE_COLUMNS = frozenset(_SCALAR_COLUMNS + _ARRAY_COLUMNS + _JSON_COLUMNS)

_RESOURCE_COLUMNS: Tuple[str, ...] = (
    ("id",) + _SCALAR_COLUMNS + _ARRAY_COLUMNS + _JSON_COLUMNS + ("status", "downloads")
)
_RESOURCE_COLUMNS_SQL = ",\n    ".join(
    ["id::text"]
    + [c for c in _RESOURCE_COLUMNS[1:]]
    + [_TS.format(col="created_at"), _TS.format(col="updated_at")]
)


def _resource_row_to_dict(row: Tuple) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for idx, col in enumerate(_RESOURCE_COLUMNS):
        out[col] = row[idx]
    for col in _ARRAY_COLUMNS:
        out[col] = list(out.get(col) or [])
    for col in _JSON_COLUMNS:
        out[col] = list(out.get(col) or [])
    out["downloads"] = int(out.get("downloads") or 0)
    out["file_size"] = int(out["file_size"]) if out.get("file_size") is not None else None
    out["created_at"] = row[len(_RESOURCE_COLUMNS)]
    out["updated_at"] = row[len(_RESOURCE_COLUMNS) + 1]
    return out


_PROFILE_COLUMNS_SQL = ", ".join(
    ["id::text"] + list(PROFILE_COLUMNS) + ["role", _TS.format(col="created_at"), _TS.format(col="updated_at")]
)


def _profile_row_to_dict(row: Tuple) -> Dict[str, Any]:
    keys = ("id",) + PROFILE_COLUMNS + ("role", "created_at", "updated_at")
    return dict(zip(keys, row))


_FEATURED_COLUMNS_SQL = (
    "id::text, title, filter_criteria, is_active, display_order, "
    + _TS.format(col="created_at")
    + ", "
    + _TS.format(col="updated_at")
)


def _featured_row_to_dict(row: Tuple) -> Dict[str, Any]:
    return {
        "id": row[0],
        "title": row[1],
        "filter_criteria": dict(row[2] or {}),
        "is_active": bool(row[3]),
        "display_order": int(row[4]) if row[4] is not None else 0,
        "created_at": row[5],
        "updated_at": row[6],
    }


def _adapt(column: str, value: Any) -> Any:
    if column in _JSON_COLUMNS:
        return Jsonb(list(value or []))
    if column in _ARRAY_COLUMNS:
        return list(value or [])
    return value


class DBResourcesRepo:
    def __init__(self, dsn: Optional[str] = None) -> None:
        """Initialize the repository; connections are opened per call."""
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for DBResourcesRepo")
        self._dsn = dsn or _dsn()

    def _writable(self, fields: Dict[str, Any]) -> List[Tuple[str, Any]]:
        unknown = set(fields) - _WRITABLE_COLUMNS
        if unknown:
            raise ValueError(f"unknown_columns:{','.join(sorted(unknown))}")
        return [(col, _adapt(col, fields[col])) for col in fields]

    # --- Profiles ---------------------------------------------------------------
    def get_profile_role(self, user_id: str) -> Optional[str]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute("select role from public.profiles where id::text = %s", (user_id,))
                row = cur.fetchone()
        return str(row[0]) if row and row[0] else None

    def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(f"select {_PROFILE_COLUMNS_SQL} from public.profiles where id::text = %s", (user_id,))
                row = cur.fetchone()
        return _profile_row_to_dict(row) if row else None

    def username_owner(self, username: str) -> Optional[str]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute("select id::text from public.profiles where username = %s", (username,))
                row = cur.fetchone()
        return row[0] if row else None

    def upsert_profile(self, user_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Insert or update the caller's own profile columns (never `role`).

        The unique index on `username` is the final arbiter when two users
        claim the same name concurrently.
        """
        unknown = set(fields) - set(PROFILE_COLUMNS)
        if unknown:
            raise ValueError(f"unknown_columns:{','.join(sorted(unknown))}")
        cols = list(fields)
        insert_cols = ", ".join(["id"] + cols)
        placeholders = ", ".join(["%s::uuid"] + ["%s" for _ in cols])
        if cols:
            conflict = "do update set " + ", ".join(f"{c} = excluded.{c}" for c in cols) + ", updated_at = now()"
        else:
            conflict = "do update set updated_at = now()"
        try:
            with psycopg.connect(self._dsn) as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"insert into public.profiles ({insert_cols}) values ({placeholders}) "
                        f"on conflict (id) {conflict} returning {_PROFILE_COLUMNS_SQL}",
                        [user_id] + [fields[c] for c in cols],
                    )
                    row = cur.fetchone()
                conn.commit()
        except Exception as exc:
            if UniqueViolation is not None and isinstance(exc, UniqueViolation):
                raise UsernameTakenError(str(fields.get("username") or "")) from exc
            raise
        if not row:
            raise PersistenceError("profile_upsert_returned_no_row")
        return _profile_row_to_dict(row)

    # --- Resources --------------------------------------------------------------
    def insert_resource(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        pairs = self._writable(fields)
        cols = ", ".join(col for col, _ in pairs)
        placeholders = ", ".join("%s" for _ in pairs)
        try:
            with psycopg.connect(self._dsn) as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"insert into public.resources ({cols}) values ({placeholders}) "
                        f"returning {_RESOURCE_COLUMNS_SQL}",
                        [value for _, value in pairs],
                    )
                    row = cur.fetchone()
                conn.commit()
        except Exception as exc:
            if UniqueViolation is not None and isinstance(exc, UniqueViolation):
                raise PersistenceError("slug_conflict") from exc
            raise
        if not row:
            raise PersistenceError("insert_returned_no_row")
        return _resource_row_to_dict(row)

    def update_resource(self, resource_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        pairs = self._writable(fields)
        if not pairs:
            return self.get_resource(resource_id)
        assignments = ", ".join(f"{col} = %s" for col, _ in pairs)
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"update public.resources set {assignments}, updated_at = now() "
                    f"where id::text = %s returning {_RESOURCE_COLUMNS_SQL}",
                    [value for _, value in pairs] + [resource_id],
                )
                row = cur.fetchone()
            conn.commit()
        return _resource_row_to_dict(row) if row else None

    def get_resource(self, resource_id: str) -> Optional[Dict[str, Any]]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_RESOURCE_COLUMNS_SQL} from public.resources where id::text = %s",
                    (resource_id,),
                )
                row = cur.fetchone()
        return _resource_row_to_dict(row) if row else None

    def get_resource_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_RESOURCE_COLUMNS_SQL} from public.resources where slug = %s",
                    (slug,),
                )
                row = cur.fetchone()
        return _resource_row_to_dict(row) if row else None

    def slug_exists(self, slug: str) -> bool:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute("select 1 from public.resources where slug = %s limit 1", (slug,))
                return cur.fetchone() is not None

    def delete_resource(self, resource_id: str) -> bool:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute("delete from public.resources where id::text = %s", (resource_id,))
                deleted = cur.rowcount > 0
            conn.commit()
        return deleted

    def set_resource_status(self, resource_id: str, status: str) -> Optional[Dict[str, Any]]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"update public.resources set status = %s, updated_at = now() "
                    f"where id::text = %s returning {_RESOURCE_COLUMNS_SQL}",
                    (status, resource_id),
                )
                row = cur.fetchone()
            conn.commit()
        return _resource_row_to_dict(row) if row else None

    def increment_downloads(self, resource_id: str) -> Optional[int]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "update public.resources set downloads = downloads + 1 "
                    "where id::text = %s returning downloads",
                    (resource_id,),
                )
                row = cur.fetchone()
            conn.commit()
        return int(row[0]) if row else None

    def browse_resources(self, filters: BrowseFilters, *, limit: int = PAGE_SIZE) -> BrowseResult:
        where, params = compile_where(filters)
        offset = (filters.page - 1) * limit
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_RESOURCE_COLUMNS_SQL}, count(*) over () "
                    f"from public.resources where {where} "
                    f"order by {compile_order(filters.sort)} limit %s offset %s",
                    params + [limit, offset],
                )
                rows = cur.fetchall() or []
                if rows:
                    total = int(rows[0][-1])
                else:
                    # Past the last page the window count is unavailable.
                    cur.execute(f"select count(*) from public.resources where {where}", params)
                    total = int((cur.fetchone() or [0])[0])
        items = [_resource_row_to_dict(r[:-1]) for r in rows]
        return BrowseResult(items=items, total=total, page=filters.page, page_size=limit)

    def list_resources_for_owner(self, user_id: str) -> List[Dict[str, Any]]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_RESOURCE_COLUMNS_SQL} from public.resources "
                    "where user_id = %s order by created_at desc, id asc",
                    (user_id,),
                )
                rows = cur.fetchall() or []
        return [_resource_row_to_dict(r) for r in rows]

    def list_resources_by_status(self, status: str) -> List[Dict[str, Any]]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_RESOURCE_COLUMNS_SQL} from public.resources "
                    "where status = %s order by created_at desc, id asc",
                    (status,),
                )
                rows = cur.fetchall() or []
        return [_resource_row_to_dict(r) for r in rows]

    # --- Featured lists ---------------------------------------------------------
    def list_featured_lists(self, *, active_only: bool = False) -> List[Dict[str, Any]]:
        where = "where is_active" if active_only else ""
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_FEATURED_COLUMNS_SQL} from public.home_featured_lists {where} "
                    "order by display_order asc, created_at asc, id asc"
                )
                rows = cur.fetchall() or []
        return [_featured_row_to_dict(r) for r in rows]

    def get_featured_list(self, list_id: str) -> Optional[Dict[str, Any]]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_FEATURED_COLUMNS_SQL} from public.home_featured_lists where id::text = %s",
                    (list_id,),
                )
                row = cur.fetchone()
        return _featured_row_to_dict(row) if row else None

    def count_active_featured_lists(self, *, exclude_id: Optional[str] = None) -> int:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "select count(*) from public.home_featured_lists "
                    "where is_active and (%s::text is null or id::text <> %s::text)",
                    (exclude_id, exclude_id),
                )
                row = cur.fetchone()
        return int(row[0]) if row else 0

    def create_featured_list(
        self, *, title: str, filter_criteria: Dict[str, List[str]], is_active: bool, max_active: int
    ) -> Dict[str, Any]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    insert into public.home_featured_lists (title, filter_criteria, is_active, display_order)
                    select %s, %s, %s,
                           coalesce((select max(display_order) + 1 from public.home_featured_lists), 0)
                    where not %s
                       or (select count(*) from public.home_featured_lists where is_active) < %s
                    returning {_FEATURED_COLUMNS_SQL}
                    """,
                    (title, Jsonb(filter_criteria), bool(is_active), bool(is_active), max_active),
                )
                row = cur.fetchone()
            conn.commit()
        if not row:
            raise ActiveListLimitError(max_active)
        return _featured_row_to_dict(row)

    def update_featured_list(
        self,
        list_id: str,
        *,
        title: object = _UNSET,
        filter_criteria: object = _UNSET,
        is_active: object = _UNSET,
        max_active: int,
    ) -> Optional[Dict[str, Any]]:
        sets: List[str] = []
        params: List[Any] = []
        if title is not _UNSET:
            sets.append("title = %s")
            params.append(title)
        if filter_criteria is not _UNSET:
            sets.append("filter_criteria = %s")
            params.append(Jsonb(filter_criteria))
        if is_active is not _UNSET:
            sets.append("is_active = %s")
            params.append(bool(is_active))
        sets.append("updated_at = now()")
        activating = is_active is True
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    update public.home_featured_lists set {", ".join(sets)}
                    where id::text = %s
                      and (not %s
                           or is_active
                           or (select count(*) from public.home_featured_lists o
                               where o.is_active and o.id::text <> %s) < %s)
                    returning {_FEATURED_COLUMNS_SQL}
                    """,
                    params + [list_id, activating, list_id, max_active],
                )
                row = cur.fetchone()
                if row is None:
                    cur.execute("select 1 from public.home_featured_lists where id::text = %s", (list_id,))
                    exists = cur.fetchone() is not None
                else:
                    exists = True
            conn.commit()
        if row is None:
            if exists:
                raise ActiveListLimitError(max_active)
            return None
        return _featured_row_to_dict(row)

    def delete_featured_list(self, list_id: str) -> bool:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute("delete from public.home_featured_lists where id::text = %s", (list_id,))
                deleted = cur.rowcount > 0
            conn.commit()
        return deleted

    def reorder_featured_lists(self, list_ids: List[str]) -> List[Dict[str, Any]]:
        """Assign display_order = position for every id in one transaction."""
        orderings = list(range(len(list_ids)))
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "select count(*) from public.home_featured_lists where id::text = any(%s)",
                    (list(list_ids),),
                )
                found = cur.fetchone()
                if not found or int(found[0]) != len(set(list_ids)):
                    raise LookupError("featured_list_not_found")
                cur.execute(
                    """
                    with new_order as (
                      select lid, ord from unnest(%s::text[], %s::int[]) as t(lid, ord)
                    )
                    update public.home_featured_lists f
                    set display_order = n.ord, updated_at = now()
                    from new_order n
                    where f.id::text = n.lid
                    """,
                    (list(list_ids), orderings),
                )
            conn.commit()
        return self.list_featured_lists()


__all__ = ["DBResourcesRepo", "HAVE_PSYCOPG"]
