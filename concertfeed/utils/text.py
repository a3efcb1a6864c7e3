"""Text normalization used for artist matching."""


def normalize_name(value: str | None) -> str:
    """Lowercase and trim a name for comparison.

    >>> normalize_name("  Taylor Swift ")
    'taylor swift'
    """
    if not value:
        return ""
    return value.strip().lower()


def normalize_names(values: list[str]) -> list[str]:
    """Normalize a list of names, dropping blanks and duplicates (order kept)."""
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        norm = normalize_name(value)
        if norm and norm not in seen:
            seen.add(norm)
            result.append(norm)
    return result
