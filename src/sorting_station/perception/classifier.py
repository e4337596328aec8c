"""
Waste classifier - maps a detected object label to a sorting category.

Exact (case-insensitive) table lookup first, then keyword heuristics:
plastic keywords beat recyclable keywords, anything else is biodegradable.
"""

from __future__ import annotations

from enum import Enum

from sorting_station.config import BIO_COLOR, PLASTIC_COLOR, RECYCLE_COLOR


class WasteCategory(Enum):
    """Sorting category. Value doubles as the controller command."""

    BIODEGRADABLE = "biodegradable"
    PLASTIC = "plastic"
    RECYCLABLE = "recyclable"

    @property
    def command(self) -> str:
        return self.value

    @property
    def prefix(self) -> str:
        return _PREFIXES[self]

    @property
    def color(self) -> tuple[int, int, int]:
        """Overlay color (BGR)."""
        return _COLORS[self]

    @property
    def stats_key(self) -> str:
        return "non_biodegradable" if self is WasteCategory.PLASTIC else self.value


_PREFIXES = {
    WasteCategory.BIODEGRADABLE: "BIO:",
    WasteCategory.PLASTIC: "NON-BIO:",
    WasteCategory.RECYCLABLE: "RECYCLE:",
}

_COLORS = {
    WasteCategory.BIODEGRADABLE: BIO_COLOR,
    WasteCategory.PLASTIC: PLASTIC_COLOR,
    WasteCategory.RECYCLABLE: RECYCLE_COLOR,
}

# Labels produced by the trained detection model
WASTE_CLASSIFICATION = {
    "Carrots": WasteCategory.BIODEGRADABLE,
    "Chili": WasteCategory.BIODEGRADABLE,
    "Egg shell": WasteCategory.BIODEGRADABLE,
    "Fish Bones": WasteCategory.BIODEGRADABLE,
    "food waste": WasteCategory.BIODEGRADABLE,
    "Garlic peel": WasteCategory.BIODEGRADABLE,
    "Garlic": WasteCategory.BIODEGRADABLE,
    "Ginger": WasteCategory.BIODEGRADABLE,
    "Laurel": WasteCategory.BIODEGRADABLE,
    "Lettuce": WasteCategory.BIODEGRADABLE,
    "Mixed Vegetables": WasteCategory.BIODEGRADABLE,
    "Onion": WasteCategory.BIODEGRADABLE,
    "Onion Peel": WasteCategory.BIODEGRADABLE,
    "Rice": WasteCategory.BIODEGRADABLE,
    "Tissue paper": WasteCategory.BIODEGRADABLE,
    "Bones": WasteCategory.BIODEGRADABLE,
    "Plastic": WasteCategory.PLASTIC,
    "Juice Packet": WasteCategory.PLASTIC,
    "Cigarette": WasteCategory.PLASTIC,
    "Tansan": WasteCategory.PLASTIC,
    "Paper Cup": WasteCategory.RECYCLABLE,
    "Can Lid": WasteCategory.RECYCLABLE,
    "Objects": WasteCategory.RECYCLABLE,
}

PLASTIC_KEYWORDS = ("plastic", "packet", "cigarette")
RECYCLABLE_KEYWORDS = ("paper", "cup", "can", "lid")


class WasteClassifier:
    """
    Pure label -> category mapping.

    Usage:
        classifier = WasteClassifier()
        classifier.classify("Juice Packet")   # WasteCategory.PLASTIC
        classifier.display_name("Carrots")    # "BIO: Carrots"
    """

    def __init__(self, table: dict[str, WasteCategory] | None = None):
        table = WASTE_CLASSIFICATION if table is None else table
        self._table = {label.strip().lower(): category for label, category in table.items()}

    def classify(self, label: str) -> WasteCategory:
        key = label.strip().lower()
        category = self._table.get(key)
        if category is not None:
            return category
        if any(word in key for word in PLASTIC_KEYWORDS):
            return WasteCategory.PLASTIC
        if any(word in key for word in RECYCLABLE_KEYWORDS):
            return WasteCategory.RECYCLABLE
        return WasteCategory.BIODEGRADABLE

    def is_known(self, label: str) -> bool:
        return label.strip().lower() in self._table

    def display_name(self, label: str) -> str:
        return f"{self.classify(label).prefix} {label}"
