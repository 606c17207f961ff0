"""
Canonical character identifiers.

Fighters, relationship edges and API lookups all key on the same
normalized id: lowercase, runs of whitespace collapsed to "_".
"Joan of Arc" and "joan_of_arc" are the same character.
"""

import re

_WHITESPACE = re.compile(r"\s+")


def canonical_id(raw) -> str:
    if raw is None:
        return ""
    return _WHITESPACE.sub("_", str(raw).strip().lower())
