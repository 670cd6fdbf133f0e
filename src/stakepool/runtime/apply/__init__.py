# src/stakepool/runtime/apply/__init__.py
"""Domain-specific apply modules.

Each module implements deterministic pool state transitions for a subset of
tx types and returns None for tx types it does not claim.

NOTE: Keep this package import-safe (no imports that require domain_dispatch).
"""

from __future__ import annotations

__all__ = [
    "admin",
    "common",
    "staking",
]
