"""
Slug generation and controlled vocabularies.

Scenarios:
- Titles fold diacritics and collapse punctuation into single hyphens.
- Collisions get `-1`, `-2`, ... suffixes; exhaustion raises SlugExhausted.
- Every topic category maps onto a distinct `topics_<key>` column.
"""
from __future__ import annotations

import pytest

from backend.resources import taxonomy
from backend.resources.errors import PersistenceError, SlugExhausted
from backend.resources.slugs import slugify, unique_slug


def test_slugify_folds_accents_and_collapses_separators():
    assert slugify("Ramadan Worksheet for Year 3") == "ramadan-worksheet-for-year-3"
    assert slugify("  Tafṣīr -- Sūrat al-Fātiḥah!! ") == "tafsir-surat-al-fatihah"
    assert slugify("ʿĀshūrāʾ") == "ashura"


def test_slugify_may_return_empty_for_symbol_only_titles():
    assert slugify("!!!") == ""
    assert slugify("") == ""


def test_unique_slug_returns_base_when_free():
    assert unique_slug("Prayer Chart", lambda s: False) == "prayer-chart"


def test_unique_slug_appends_incrementing_suffix_on_collision():
    taken = {"prayer-chart", "prayer-chart-1"}
    assert unique_slug("Prayer Chart", taken.__contains__) == "prayer-chart-2"


def test_unique_slug_falls_back_when_title_has_no_slug_characters():
    assert unique_slug("???", lambda s: False) == "resource"


def test_unique_slug_raises_when_attempts_exhausted():
    with pytest.raises(SlugExhausted) as excinfo:
        unique_slug("Same", lambda s: True, max_attempts=3)
    assert isinstance(excinfo.value, PersistenceError)
    assert excinfo.value.attempts == 3


def test_topic_columns_are_unique_and_prefixed():
    assert len(taxonomy.TOPIC_COLUMNS) == 11
    assert len(set(taxonomy.TOPIC_COLUMNS)) == 11
    assert all(col.startswith("topics_") for col in taxonomy.TOPIC_COLUMNS)
    assert taxonomy.TOPIC_CATEGORIES_BY_KEY["curriculum"].column == "topics_curriculum"


def test_unknown_values_preserves_input_order():
    assert taxonomy.unknown_values(["Grade 1", "Grade 99", "Year 0"], taxonomy.TARGET_GRADES) == [
        "Grade 99",
        "Year 0",
    ]


def test_grade_bands_cover_every_grade_once():
    covered = [g for _key, _title, grades in taxonomy.GRADE_BANDS for g in grades]
    assert sorted(covered) == sorted(taxonomy.TARGET_GRADES)
    assert [key for key, _t, _g in taxonomy.GRADE_BANDS] == ["elementary", "middle", "high"]


def test_as_dict_exposes_every_vocabulary():
    data = taxonomy.as_dict()
    assert data["targetGrades"][0] == "Preschool"
    assert "Worksheet" in data["resourceTypes"]
    assert [c["field"] for c in data["topicCategories"]][0] == "topicsQuran"
    assert data["creditOrganizations"][-1] == "Other"
    assert data["gradeBands"][1]["title"] == "Middle School"
