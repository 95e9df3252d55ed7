"""Shared item name normalization utilities."""

import re

_WHITESPACE = re.compile(r"\s+")
_QUANTITY_TOKEN = re.compile(
    r"\d+(?:\.\d+)?\s*(?:ml|l|g|kg|pt|pint|pints|pack|oz|lb|litre|litres|liter|liters)\b",
    re.IGNORECASE,
)


def normalize_item_name(item_name: str) -> str:
    """Normalize item names into the ledger join key."""
    return _WHITESPACE.sub(" ", item_name.strip().lower())


def extract_base_item(item_name: str) -> str:
    """Strip size tokens to get the variant catalog key.

    "Whole Milk 2 Pints" -> "whole milk", "Water 500ml" -> "water".
    """
    stripped = _QUANTITY_TOKEN.sub(" ", normalize_item_name(item_name))
    return _WHITESPACE.sub(" ", stripped).strip()


def display_item_name(item_name: str) -> str:
    """Build a readable item name, keeping size tokens like 2L intact."""
    words = _WHITESPACE.sub(" ", item_name.strip()).split(" ")
    return " ".join(word[:1].upper() + word[1:] for word in words if word)


def variant_label(base_item: str, size: str, unit: str) -> str:
    """Name a receipt-discovered variant, e.g. ("milk", "2", "L") -> "Milk 2L"."""
    size = size.strip()
    unit = unit.strip()
    amount = size if unit.lower() in size.lower() else f"{size}{unit}"
    return display_item_name(f"{base_item} {amount}")


def variant_name_key(variant_name: str) -> str:
    """Case-insensitive key for variant names, Unicode-aware."""
    return normalize_item_name(variant_name).casefold()
