"""
Environment label normalisation.

Services carry their environment in ``used_for`` while servers carry it in
``classification``, and the two fields use different vocabularies for the
same thing ("Production" vs "prod-east", "Test / QA" vs "qa").  Both sides
are normalised with :func:`normalize_env` before they are compared.
"""

from __future__ import annotations

from typing import Optional

# Ordered: the first matching rule wins.
_RULES: list[tuple[tuple[str, ...], tuple[str, ...], str]] = [
    (("prod",), ("support",), "production"),
    (("dev",), (), "development"),
    (("test", "qa"), (), "test"),
    (("stag",), (), "staging"),
    (("dr", "disaster"), (), "dr"),
]


def normalize_env(raw: Optional[str]) -> Optional[str]:
    """Map a raw environment string onto a canonical label.

    Matching is a case-insensitive substring test:

    1. contains ``prod`` but not ``support`` -> ``production``
    2. contains ``dev`` -> ``development``
    3. contains ``test`` or ``qa`` -> ``test``
    4. contains ``stag`` -> ``staging``
    5. contains ``dr`` or ``disaster`` -> ``dr``
    6. otherwise the lower-cased, trimmed input

    Args:
        raw: The raw label, possibly ``None`` or blank.

    Returns:
        The canonical label, or ``None`` when *raw* is missing or blank.
    """
    if not raw:
        return None
    lowered = raw.strip().lower()
    if not lowered:
        return None

    for needles, exclusions, label in _RULES:
        if any(n in lowered for n in needles) and not any(
            e in lowered for e in exclusions
        ):
            return label
    return lowered
