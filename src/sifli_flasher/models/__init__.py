"""
Chip registry for SiFli targets.

Provides a unified layer for chip profiles and stub lookup.
"""

from .registry import (
    ChipProfile,
    MemoryType,
    UnsupportedChipError,
    CHIP_PROFILES,
    get_chip_profile,
    list_chips,
    list_profiles,
)

__all__ = [
    "ChipProfile",
    "MemoryType",
    "UnsupportedChipError",
    "CHIP_PROFILES",
    "get_chip_profile",
    "list_chips",
    "list_profiles",
]
