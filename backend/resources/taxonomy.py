"""
Controlled vocabularies used to classify resources.

Why:
    Upload validation, browse filters and featured-list criteria must agree on
    the exact tag spelling (including diacritics). Keeping every vocabulary in
    one module prevents drift between those consumers.

Conventions:
    - Grades and resource types are the two required dimensions.
    - Topic categories are optional and each maps to one storage column
      (`topics_<key>`). Curriculum is a topic category but is filtered through
      its own browse parameter.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

TARGET_GRADES: Tuple[str, ...] = (
    "Preschool",
    "Kindergarten",
    "Grade 1",
    "Grade 2",
    "Grade 3",
    "Grade 4",
    "Grade 5",
    "Grade 6",
    "Grade 7",
    "Grade 8",
    "Grade 9",
    "Grade 10",
    "Grade 11",
    "Grade 12",
)

RESOURCE_TYPES: Tuple[str, ...] = (
    "Workbook",
    "Speech",
    "Podcast",
    "Activity Book",
    "Art",
    "Articles",
    "Audio",
    "Craft",
    "Decoration",
    "EBook",
    "Experiments",
    "Flash cards",
    "Game",
    "Image",
    "Journal",
    "Kahoot",
    "Latmiyya/Nasheed",
    "Lesson",
    "PDF",
    "Play",
    "Poem",
    "Story",
    "Video",
    "Worksheet",
)

TOPICS_QURAN = (
    "Qurʾān Reading",
    "Āyahs (Verses)",
    "Memorization",
    "Stories",
    "Tafṣīr",
    "Tajwīd",
    "Translation",
    "Verses of Light",
)

TOPICS_DUAS_ZIYARAT = (
    "Aṣ-Ṣaḥīfah as-Sajjādiyyah",
    "Daily Ramaḍān Duʿās",
    "Duʿāʾ al-ʿAhd",
    "Duʿāʾ al-Iftitāḥ",
    "Duʿāʾ Kumayl",
    "Duʿāʾ an-Nudbah",
    "Duʿāʾ at-Tawassul",
    "Ḥadīth al-Kisāʾ",
    "Ziyārat Āl Yāsīn",
    "Ziyārat al-Arbaʿīn",
    "Ziyārat ʿĀshūrāʾ",
    "Ziyārat Wārith",
)

TOPICS_AQAID = (
    "Allah's Attributes",
    "Tawḥīd (Divine Unity)",
    "ʿAdālah (Divine Justice)",
    "Nubuwwah (Prophethood)",
    "Imāmah (Divine Leadership)",
    "Qiyāmah (Day of Judgment)",
    "Wilāyah",
)

TOPICS_FIQH = (
    "Ṣalāh (Prayer)",
    "Ṣawm (Fasting)",
    "Ḥajj (Pilgrimage)",
    "Zakāt",
    "Khums",
    "Jihād",
    "Amr bil Maʿrūf",
    "Nahī ʿanil Munkar",
    "Tawallī",
    "Tabarrī",
)

TOPICS_AKHLAQ = (
    "Animal Rights",
    "Arrogance",
    "Backbiting",
    "Being Active",
    "Bullying",
    "Children",
    "Cleanliness",
    "Courage",
    "Diversity",
    "Environment",
    "Food",
    "Forgiveness",
    "Friendship",
    "Generosity",
    "Grandparents",
    "Gratitude",
    "Greed",
    "Humility",
    "Integrity",
    "Islamic Phrases",
    "Jealousy",
    "Kindness",
    "Lying",
    "Manners",
    "Marriage",
    "Mental Health",
    "Neighbors",
    "Parents",
    "Patience",
    "Perseverance",
    "Respect",
    "Self Control",
    "Sharing",
    "Siblings",
    "Stealing",
    "Taqwā (God-consciousness)",
    "Teachers",
    "Trust",
    "Unity",
)

TOPICS_TARIKH = (
    "Arbaʿīn",
    "Biʿthah",
    "Ayām Fāṭimiyyah",
    "Eidul Aḍḥā",
    "Eidul Fiṭr",
    "The Event of Ghadīr",
    "Milādun-Nabī (Week of Unity)",
    "Miʿrāj",
    "Spiritual Season",
    "The Event of al-Kisāʾ",
    "The Event of Karbalāʾ",
    "The Event of Mubāhalah",
    "The Ten Days of al-Karāmah",
)

TOPICS_PERSONALITIES = (
    "Prophet Muḥammad (ṣ)",
    "Imām ʿAlī (ʿa)",
    "Sayyidah Fāṭimah (ʿa)",
    "Imām Ḥasan (ʿa)",
    "Imām Ḥusayn (ʿa)",
    "Imām as-Sajjād (ʿa)",
    "Imām al-Bāqir (ʿa)",
    "Imām aṣ-Ṣādiq (ʿa)",
    "Imām al-Kāẓim (ʿa)",
    "Imām ar-Riḍā (ʿa)",
    "Imām al-Jawād (ʿa)",
    "Imām an-Naqī (ʿa)",
    "Imām al-ʿAskarī (ʿa)",
    "Imām al-Mahdī (ʾaj)",
    "Prophets",
    "Companions",
)

TOPICS_ISLAMIC_MONTHS = (
    "Muḥarram",
    "Ṣafar",
    "Rabīʿ al-Awwal",
    "Rabīʿ al-Ākhir",
    "Jumādā al-Ūlā",
    "Jumādā al-Ākhirah",
    "Rajab",
    "Shaʿbān",
    "Shahr Ramaḍān",
    "Shawwāl",
    "Dhul Qaʿdah",
    "Dhul Ḥijjah",
)

TOPICS_LANGUAGES = (
    "Arabic",
    "Danish",
    "Farsi",
    "French",
    "Spanish",
    "Swahili",
    "Swedish",
    "Urdu",
)

TOPICS_CURRICULUM = (
    "Islamic Studies Curriculum",
    "Qurʾān Curriculum",
    "Science Curriculum",
)

TOPICS_OTHER = (
    "Bulūgh/Taklīf",
    "New Muslims",
    "Family",
    "Homeschooling",
    "Marriage",
    "Parenting",
    "Special Education",
    "Young Adults",
)

CREDIT_ORGANIZATIONS = (
    "Islam for my Kids",
    "Reflect 14",
    "Hadi Club",
    "Al Noor Channel",
    "ZT Media",
    "Servants of Lady Fatimah",
    "Unknown",
    "Sakina Hasan Askari",
    "NoorInk Radio",
    "Aunty Zahra Media",
    "Sun Behind the Cloud",
    "AhlulBayt Art by Alisa",
    "TopsInspire",
    "ICZ",
    "Tarbiyah Made Easy",
    "Noor Islamic Education",
    "5 and 14 Islamic Books",
    "Fatimasughra_",
    "Camp Noor",
    "CABTV",
    "Islamic Lessons Made Easy",
    "ALQAEM KIDS",
    "SABA Islamic Center",
    "L'équipe Shia 974",
    "Le Phare des 14 Lumiéres",
    "Hussainiyat Al Imam Al Hassan",
    "The WonderTime Show",
    "Al-Kisa Foundation",
    "Kisa Family",
    "Ṣirāṭ Prison Project",
    "Tanveer Shares",
    "QFatima",
    "Al Hujjah Kids",
    "Who is Hussain?",
    "Shazia Yusufali",
    "Masjid Sayed Hashim Bahbahani",
    "Other",
)


@dataclass(frozen=True)
class TopicCategory:
    """One optional topic dimension and the column it is stored in."""

    key: str
    label: str
    field: str
    options: Tuple[str, ...]

    @property
    def column(self) -> str:
        return f"topics_{self.key}"


TOPIC_CATEGORIES: Tuple[TopicCategory, ...] = (
    TopicCategory("quran", "Qurʾān", "topicsQuran", TOPICS_QURAN),
    TopicCategory("duas_ziyarat", "Duʿās & Ziyārāt", "topicsDuasZiyarat", TOPICS_DUAS_ZIYARAT),
    TopicCategory("aqaid", "ʿAqāʾid", "topicsAqaid", TOPICS_AQAID),
    TopicCategory("fiqh", "Fiqh", "topicsFiqh", TOPICS_FIQH),
    TopicCategory("akhlaq", "Akhlāq", "topicsAkhlaq", TOPICS_AKHLAQ),
    TopicCategory("tarikh", "Tārīkh", "topicsTarikh", TOPICS_TARIKH),
    TopicCategory("personalities", "Personalities", "topicsPersonalities", TOPICS_PERSONALITIES),
    TopicCategory("islamic_months", "Islamic Months", "topicsIslamicMonths", TOPICS_ISLAMIC_MONTHS),
    TopicCategory("languages", "Languages", "topicsLanguages", TOPICS_LANGUAGES),
    TopicCategory("curriculum", "Curriculum", "topicsCurriculum", TOPICS_CURRICULUM),
    TopicCategory("other", "Other", "topicsOther", TOPICS_OTHER),
)

TOPIC_CATEGORIES_BY_KEY: Dict[str, TopicCategory] = {c.key: c for c in TOPIC_CATEGORIES}

# All eleven topic columns; a selected topic is tested against every one of them.
TOPIC_COLUMNS: Tuple[str, ...] = tuple(c.column for c in TOPIC_CATEGORIES)

ALL_TOPICS: frozenset[str] = frozenset(t for c in TOPIC_CATEGORIES for t in c.options)

# Homepage grade bands
ELEMENTARY_GRADES = ("Preschool", "Kindergarten", "Grade 1", "Grade 2", "Grade 3", "Grade 4", "Grade 5")
MIDDLE_GRADES = ("Grade 6", "Grade 7", "Grade 8")
HIGH_GRADES = ("Grade 9", "Grade 10", "Grade 11", "Grade 12")

GRADE_BANDS: Tuple[Tuple[str, str, Tuple[str, ...]], ...] = (
    ("elementary", "Elementary", ELEMENTARY_GRADES),
    ("middle", "Middle School", MIDDLE_GRADES),
    ("high", "High School", HIGH_GRADES),
)


def unknown_values(values: Iterable[str], vocabulary: Iterable[str]) -> List[str]:
    """Return values that are not part of `vocabulary`, preserving input order."""
    allowed = set(vocabulary)
    return [v for v in values if v not in allowed]


def as_dict() -> Dict[str, object]:
    """Serialize every vocabulary for clients rendering forms and filters."""
    return {
        "targetGrades": list(TARGET_GRADES),
        "resourceTypes": list(RESOURCE_TYPES),
        "topicCategories": [
            {"key": c.key, "label": c.label, "field": c.field, "options": list(c.options)}
            for c in TOPIC_CATEGORIES
        ],
        "creditOrganizations": list(CREDIT_ORGANIZATIONS),
        "gradeBands": [
            {"key": key, "title": title, "grades": list(grades)} for key, title, grades in GRADE_BANDS
        ],
    }


__all__ = [
    "TARGET_GRADES",
    "RESOURCE_TYPES",
    "CREDIT_ORGANIZATIONS",
    "TopicCategory",
    "TOPIC_CATEGORIES",
    "TOPIC_CATEGORIES_BY_KEY",
    "TOPIC_COLUMNS",
    "ALL_TOPICS",
    "GRADE_BANDS",
    "unknown_values",
    "as_dict",
]
