"""Merge provenance tags."""

from __future__ import annotations

from enum import StrEnum


class Provenance(StrEnum):
    """Where a merge came from.

    ``LOCAL`` merges are stamped with the local clock and pushed upstream;
    ``SERVER`` merges carry the authority's own timestamp and are never
    pushed back, which is what keeps push and poll from feeding each other.
    """

    LOCAL = "local"
    SERVER = "server"
