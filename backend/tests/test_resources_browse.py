"""
Browse semantics against the in-memory repository, plus SQL compilation.

Scenarios:
- Only approved resources are ever returned.
- Grades/types/curriculum match on any overlap; topics match across all
  eleven topic columns.
- q matches title or description, case-insensitively.
- Sorting is deterministic (id ascending breaks ties).
- Pages past the end are empty but report the real total.
"""
from __future__ import annotations

from backend.resources.browse import (
    PAGE_SIZE,
    BrowseFilters,
    BrowseResult,
    compile_order,
    compile_where,
    split_values,
)
from backend.resources.repo_memory import InMemoryResourcesRepo
from backend.resources.taxonomy import TOPIC_COLUMNS


def _seed(repo: InMemoryResourcesRepo, title: str, *, status: str = "approved", **fields) -> dict:
    record = repo.insert_resource({"title": title, "user_id": "owner", **fields})
    if status != "pending":
        record = repo.set_resource_status(record["id"], status)
    return record


def test_split_values_accepts_commas_and_repeats():
    assert split_values(["Grade 1,Grade 2", "Grade 2", " ", "Grade 3"]) == ("Grade 1", "Grade 2", "Grade 3")
    assert split_values("Video") == ("Video",)
    assert split_values(None) == ()


def test_from_params_normalizes_sort_and_page():
    f = BrowseFilters.from_params(sort="POPULAR", page="3")
    assert (f.sort, f.page, f.offset) == ("popular", 3, 2 * PAGE_SIZE)
    f = BrowseFilters.from_params(sort="random", page="-2")
    assert (f.sort, f.page) == ("newest", 1)
    assert BrowseFilters.from_params(page="abc").page == 1


def test_only_approved_resources_are_returned():
    repo = InMemoryResourcesRepo()
    _seed(repo, "Approved", status="approved")
    _seed(repo, "Pending", status="pending")
    _seed(repo, "Rejected", status="rejected")
    result = repo.browse_resources(BrowseFilters())
    assert [r["title"] for r in result.items] == ["Approved"]
    assert result.total == 1


def test_grade_filter_matches_on_overlap():
    repo = InMemoryResourcesRepo()
    _seed(repo, "Both", target_grades=["Grade 3", "Grade 4"])
    _seed(repo, "Other", target_grades=["Grade 9"])
    result = repo.browse_resources(BrowseFilters.from_params(grades=["Grade 4,Grade 5"]))
    assert [r["title"] for r in result.items] == ["Both"]


def test_topic_filter_searches_every_topic_column():
    repo = InMemoryResourcesRepo()
    _seed(repo, "Akhlaq", topics_akhlaq=["Kindness"])
    _seed(repo, "Months", topics_islamic_months=["Shahr Ramaḍān"])
    _seed(repo, "Untagged")
    result = repo.browse_resources(BrowseFilters.from_params(topics="Kindness,Shahr Ramaḍān"))
    assert sorted(r["title"] for r in result.items) == ["Akhlaq", "Months"]


def test_curriculum_filter_uses_curriculum_column_only():
    repo = InMemoryResourcesRepo()
    _seed(repo, "Curriculum", topics_curriculum=["Qurʾān Curriculum"])
    _seed(repo, "Elsewhere", topics_other=["Qurʾān Curriculum"])
    result = repo.browse_resources(BrowseFilters.from_params(curriculum=["Qurʾān Curriculum"]))
    assert [r["title"] for r in result.items] == ["Curriculum"]


def test_query_matches_title_or_description_case_insensitively():
    repo = InMemoryResourcesRepo()
    _seed(repo, "Ramadan Worksheet")
    _seed(repo, "Calendar", description="A RAMADAN countdown")
    _seed(repo, "Unrelated", description="Prayer times")
    result = repo.browse_resources(BrowseFilters.from_params(q="ramadan"))
    assert sorted(r["title"] for r in result.items) == ["Calendar", "Ramadan Worksheet"]


def test_filters_combine_with_and():
    repo = InMemoryResourcesRepo()
    _seed(repo, "Match", target_grades=["Grade 1"], resource_types=["Video"])
    _seed(repo, "Wrong type", target_grades=["Grade 1"], resource_types=["Game"])
    result = repo.browse_resources(BrowseFilters.from_params(grades="Grade 1", types="Video"))
    assert [r["title"] for r in result.items] == ["Match"]


def test_sort_orders_and_id_tiebreak():
    repo = InMemoryResourcesRepo()
    first = _seed(repo, "First")
    second = _seed(repo, "Second")
    third = _seed(repo, "Third")
    repo.resources[second["id"]]["downloads"] = 5
    repo.resources[first["id"]]["downloads"] = 2
    repo.resources[third["id"]]["downloads"] = 2

    newest = repo.browse_resources(BrowseFilters.from_params(sort="newest")).items
    oldest = repo.browse_resources(BrowseFilters.from_params(sort="oldest")).items
    popular = repo.browse_resources(BrowseFilters.from_params(sort="popular")).items

    assert [r["title"] for r in newest] == ["Third", "Second", "First"]
    assert [r["title"] for r in oldest] == ["First", "Second", "Third"]
    tied = sorted([first["id"], third["id"]])
    assert [r["id"] for r in popular] == [second["id"], *tied]


def test_pagination_and_past_the_end():
    repo = InMemoryResourcesRepo()
    for i in range(PAGE_SIZE + 3):
        _seed(repo, f"Item {i}")
    page1 = repo.browse_resources(BrowseFilters.from_params(page=1))
    page2 = repo.browse_resources(BrowseFilters.from_params(page=2))
    page9 = repo.browse_resources(BrowseFilters.from_params(page=9))
    assert len(page1.items) == PAGE_SIZE
    assert len(page2.items) == 3
    assert page9.items == [] and page9.total == PAGE_SIZE + 3
    assert page1.total_pages == 2
    assert {r["id"] for r in page1.items}.isdisjoint({r["id"] for r in page2.items})


def test_total_pages_is_at_least_one():
    assert BrowseResult(items=[], total=0).total_pages == 1


def test_to_query_round_trips_lists_as_commas():
    f = BrowseFilters.from_params(grades=["Grade 1", "Grade 2"], sort="oldest")
    assert f.to_query() == [("grades", "Grade 1,Grade 2"), ("sort", "oldest")]


def test_compile_where_always_filters_approved_and_escapes_like():
    where, params = compile_where(BrowseFilters.from_params(q="100%_done"))
    assert where.startswith("status = 'approved'")
    assert params == ["%100\\%\\_done%", "%100\\%\\_done%"]


def test_compile_where_or_across_topic_columns():
    where, params = compile_where(BrowseFilters.from_params(topics="Kindness", grades="Grade 1"))
    assert "target_grades && %s::text[]" in where
    for col in TOPIC_COLUMNS:
        assert f"{col} && %s::text[]" in where
    assert params[0] == ["Grade 1"]
    assert params[1:] == [["Kindness"]] * len(TOPIC_COLUMNS)


def test_compile_order_tiebreaks_on_id():
    assert compile_order("popular") == "downloads desc, id asc"
    assert compile_order("unknown") == "created_at desc, id asc"
