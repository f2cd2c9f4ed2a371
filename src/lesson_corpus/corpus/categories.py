from __future__ import annotations

import re
from typing import Dict, Iterable, List

from lesson_corpus.data_models import Activity

CATEGORY_ORDER = [
    "Welcome",
    "Kodaly Songs",
    "Kodaly Action Songs",
    "Action/Games Songs",
    "Rhythm Sticks",
    "Scarf Songs",
    "General Game",
    "Core Songs",
    "Parachute Games",
    "Percussion Games",
    "Goodbye",
    "Teaching Units",
    "Kodaly Rhythms",
    "Kodaly Games",
    "IWB Games",
]

FIXED_TITLES = {
    "Kodaly Songs": "Kodaly Lesson",
    "Rhythm Sticks": "Rhythm Sticks Lesson",
    "Percussion Games": "Percussion Lesson",
    "Scarf Songs": "Movement with Scarves",
    "Parachute Games": "Parachute Activities",
    "Action/Games Songs": "Action Games Lesson",
}

UNTITLED = "Untitled Lesson"

_UUID = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)
_RANK = {name: index for index, name in enumerate(CATEGORY_ORDER)}


def sort_categories(categories: Iterable[str]) -> List[str]:
    """Known categories in preference order, then the rest alphabetically."""
    unique = set(categories)
    return sorted(unique, key=lambda name: (0, _RANK[name], "") if name in _RANK else (1, 0, name))


def group_by_category(activities: Iterable[Activity]) -> Dict[str, List[Activity]]:
    grouped: Dict[str, List[Activity]] = {}
    for activity in activities:
        grouped.setdefault(activity.category, []).append(activity)
    return grouped


def generate_title(grouped: Dict[str, List[Activity]]) -> str:
    """
    Synthesize a lesson title from the categories it contains.

    Welcome and Goodbye frame almost every lesson, so when both are present the title comes
    from the first other category. A handful of categories carry a fixed title; anything
    else becomes "<category> Lesson".
    """
    categories = sort_categories(name for name, items in grouped.items() if items)
    if not categories:
        return UNTITLED
    if "Welcome" in categories and "Goodbye" in categories:
        others = [name for name in categories if name not in ("Welcome", "Goodbye")]
        return f"{others[0]} Lesson" if others else "Standard Lesson"
    for category, title in FIXED_TITLES.items():
        if category in categories:
            return title
    return f"{categories[0]} Lesson"


def looks_like_uuid(value: str | None) -> bool:
    return bool(value) and bool(_UUID.match(value.strip()))
