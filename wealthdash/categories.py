from functools import lru_cache
from typing import NamedTuple

__all__ = ['CategoryStyle', 'classify', 'category_icon', 'category_color', 'DEFAULT_ICON', 'DEFAULT_COLOR']

DEFAULT_ICON = "CircleDollarSign"
DEFAULT_COLOR = "#999999"

CATEGORY_ICONS = {
    "Housing": "Home",
    "Groceries": "ShoppingCart",
    "Transportation": "Car",
    "Dining Out": "Utensils",
    "Entertainment": "Film",
    "Utilities": "Monitor",
    "Travel": "Globe",
    "Food": "Pizza",
    "Bills": "FileText",
    "Healthcare": "HeartPulse",
    "Education": "BookOpen",
    "Shopping": "ShoppingBag",
    "Other": "HelpCircle",
}

CATEGORY_COLORS = {
    "Food": "#FF6384",
    "Bills": "#36A2EB",
    "Travel": "#FFCE56",
    "Entertainment": "#4BC0C0",
    "Shopping": "#9966FF",
    "Other": "#FF9F40",
    "Housing": "#41B883",
    "Transportation": "#E46651",
    "Healthcare": "#00D8FF",
    "Education": "#DD1B16",
}


class CategoryStyle(NamedTuple):
    icon: str
    color: str


def category_icon(category: str) -> str:
    return CATEGORY_ICONS.get(category, DEFAULT_ICON)


def category_color(category: str) -> str:
    return CATEGORY_COLORS.get(category, DEFAULT_COLOR)


def classify(category: str) -> CategoryStyle:
    """Map a free-text category label to its display icon key and color.

    Unknown labels (and non-string input) resolve to the neutral fallback.
    """
    if not isinstance(category, str):
        return CategoryStyle(DEFAULT_ICON, DEFAULT_COLOR)
    return _classify_label(category)


@lru_cache(maxsize=None)
def _classify_label(category: str) -> CategoryStyle:
    return CategoryStyle(category_icon(category), category_color(category))
