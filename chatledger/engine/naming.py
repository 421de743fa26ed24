"""Name matching shared by categories and goals."""

import difflib
from typing import Callable, Iterable, Optional, TypeVar


T = TypeVar("T")


def normalize_name(name: str) -> str:
    return " ".join(name.split()).casefold()


def find_exact(items: Iterable[T], name: str, key: Callable[[T], str]) -> Optional[T]:
    wanted = normalize_name(name)
    for item in items:
        if normalize_name(key(item)) == wanted:
            return item
    return None


def find_fuzzy(items: Iterable[T], name: str, key: Callable[[T], str]) -> Optional[T]:
    """
    Exact (case-insensitive) match first, then a substring match in
    either direction that is unique. Ambiguous or no match gives None.
    """
    items = list(items)
    exact = find_exact(items, name, key)
    if exact is not None:
        return exact

    wanted = normalize_name(name)
    partial = [
        item for item in items
        if wanted in normalize_name(key(item)) or normalize_name(key(item)) in wanted
    ]
    return partial[0] if len(partial) == 1 else None


def suggest_names(name: str, candidates: Iterable[str], limit: int = 3) -> list[str]:
    """Closest candidate names for a "did you mean" reply."""
    by_normalized = {normalize_name(c): c for c in candidates}
    matches = difflib.get_close_matches(normalize_name(name), list(by_normalized), n=limit, cutoff=0.5)
    return [by_normalized[m] for m in matches]
