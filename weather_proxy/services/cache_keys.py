"""
Cache key derivation.

Keys are pure functions of (kind, city, days):

    current_key("  New   York ")  ->  "current:new-york"
    forecast_key("Perm", 3)       ->  "forecast:perm:3"

The namespace prefix (e.g. "weather:") is added by the cache store, not here.
"""

import re

MAX_SLUG_LENGTH = 64

_NON_SLUG_CHARS = re.compile(r"[^a-z0-9-]+")
_HYPHEN_RUNS = re.compile(r"-{2,}")


def slugify(city: str | None) -> str:
    """
    Normalize a free-text city name into a key-safe slug.

    'São Paulo' -> 's-o-paulo', '  HELSINKI ' -> 'helsinki', '' -> ''
    """
    if not city:
        return ""

    slug = city.strip().lower().replace(" ", "-")
    slug = _NON_SLUG_CHARS.sub("-", slug)
    slug = _HYPHEN_RUNS.sub("-", slug).strip("-")
    # a cut at the limit can land right after a separator
    return slug[:MAX_SLUG_LENGTH].rstrip("-")


def current_key(city: str) -> str:
    return f"current:{slugify(city)}"


def forecast_key(city: str, days: int) -> str:
    return f"forecast:{slugify(city)}:{int(days)}"
