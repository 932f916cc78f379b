"""
Public read routes: browse, homepage sections and taxonomy.

All three are reachable without a session. Only approved resources are ever
returned; the status filter is applied below the query surface.
"""
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Query, Request

from backend.resources import taxonomy
from backend.resources.browse import BrowseFilters
from backend.web import deps
from backend.web.routes.resources import serialize_resource
from backend.web.routes.security import json_private

browse_router = APIRouter(tags=["Browse"])


@browse_router.get("/api/browse")
async def browse_resources(
    request: Request,
    q: str | None = None,
    grades: List[str] = Query(default=[]),
    types: List[str] = Query(default=[]),
    topics: List[str] = Query(default=[]),
    curriculum: List[str] = Query(default=[]),
    sort: str | None = None,
    page: str | None = None,
):
    """Filter approved resources.

    Behavior:
        - List params accept repeated keys and/or comma-separated values.
        - Unknown sort keys fall back to `newest`; invalid pages to 1.
        - Pages past the end return `items: []` with the real total.
    """
    filters = BrowseFilters.from_params(
        q=q, grades=grades, types=types, topics=topics, curriculum=curriculum, sort=sort, page=page or 1
    )
    result = deps.catalog_service().browse(filters)
    return json_private(
        {
            "items": [serialize_resource(r) for r in result.items],
            "total": result.total,
            "page": result.page,
            "pageSize": result.page_size,
            "totalPages": result.total_pages,
            "sort": filters.sort,
        }
    )


@browse_router.get("/api/home")
async def home_sections(request: Request):
    """Homepage: active featured lists, then the three grade bands."""
    sections = deps.featured_service().home_sections()
    return json_private(
        {
            "featured": [
                {
                    "id": s["list"]["id"],
                    "title": s["list"]["title"],
                    "href": s["href"],
                    "resources": [serialize_resource(r) for r in s["resources"]],
                }
                for s in sections["featured"]
            ],
            "gradeBands": [
                {
                    "key": band["key"],
                    "title": band["title"],
                    "href": band["href"],
                    "resources": [serialize_resource(r) for r in band["resources"]],
                }
                for band in sections["gradeBands"]
            ],
        }
    )


@browse_router.get("/api/taxonomy")
async def get_taxonomy():
    return json_private(taxonomy.as_dict())


__all__ = ["browse_router"]
