"""State/store layer.

This package is the single source of truth for how local edits, peer
contexts and the remote authority are merged into the shared context record.
"""
