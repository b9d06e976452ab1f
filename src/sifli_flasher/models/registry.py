"""
Chip registry for SiFli targets.

Provides a single source of truth for:
- Chip + memory combinations that have a RAM stub
- Where the stub is loaded in target RAM
- Flash bank layout per chip family

Usage:
    from sifli_flasher.models import get_chip_profile, list_chips

    profile = get_chip_profile("SF32LB52", "nor")
    profile.stub_file            # "ram_patch_52X.bin"
    profile.stub_load_address    # 0x2005A000

The tables are built once at import and never modified afterwards.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple


class MemoryType(Enum):
    """Flash controller / storage variant attached to the chip."""
    NOR = "nor"
    NAND = "nand"
    SD = "sd"


class UnsupportedChipError(Exception):
    """No RAM stub exists for the requested chip and memory combination."""

    def __init__(self, chip: str, memory: str):
        self.chip = chip
        self.memory = memory
        super().__init__(
            f"Unsupported combination: chip '{chip}' with memory '{memory}'. "
            f"Known: {', '.join(f'{c}/{m}' for c, m in list_profiles())}"
        )


@dataclass(frozen=True)
class ChipProfile:
    """
    Immutable description of a flashing target.

    Attributes:
        chip: Chip family name as given to the debug probe (e.g. "SF32LB52")
        memory: Memory variant
        stub_file: File name of the RAM stub image
        stub_load_address: RAM address the stub is copied to
        ram_window_base: Physical addresses at or above this are RAM
        flash_banks: Base addresses of the flash banks of the family
    """
    chip: str
    memory: MemoryType
    stub_file: str
    stub_load_address: int = 0x2005_A000
    ram_window_base: int = 0x2000_0000
    flash_banks: Tuple[int, ...] = field(default_factory=tuple)
    notes: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def key(self) -> str:
        """Lookup key, e.g. 'sf32lb52_nor'."""
        return f"{self.chip.lower()}_{self.memory.value}"

    def to_dict(self) -> Dict:
        """Convert to JSON-serializable dict."""
        return {
            "chip": self.chip,
            "memory": self.memory.value,
            "stub_file": self.stub_file,
            "stub_load_address": f"0x{self.stub_load_address:08X}",
            "ram_window_base": f"0x{self.ram_window_base:08X}",
            "flash_banks": [f"0x{b:08X}" for b in self.flash_banks],
            "notes": list(self.notes),
        }


# ============================================================================
# CHIP REGISTRY - All known chip/memory combinations
# ============================================================================

_SF32LB52_BANKS = (0x1000_0000, 0x1200_0000)


def _build_registry() -> Mapping[str, ChipProfile]:
    profiles = [
        ChipProfile(
            chip="SF32LB52",
            memory=MemoryType.NOR,
            stub_file="ram_patch_52X.bin",
            flash_banks=_SF32LB52_BANKS,
            notes=("Internal / external NOR flash",),
        ),
        ChipProfile(
            chip="SF32LB52",
            memory=MemoryType.NAND,
            stub_file="ram_patch_52X_NAND.bin",
            flash_banks=_SF32LB52_BANKS,
            notes=("External SPI NAND",),
        ),
        ChipProfile(
            chip="SF32LB52",
            memory=MemoryType.SD,
            stub_file="ram_patch_52X_SD.bin",
            flash_banks=_SF32LB52_BANKS,
            notes=("SD card / eMMC",),
        ),
    ]
    return MappingProxyType({p.key: p for p in profiles})


CHIP_PROFILES: Mapping[str, ChipProfile] = _build_registry()


def _normalize_memory(memory: str) -> Optional[MemoryType]:
    try:
        return MemoryType(memory.strip().lower())
    except ValueError:
        return None


def get_chip_profile(chip: str, memory: str = "nor") -> ChipProfile:
    """
    Resolve the profile for a chip + memory pair.

    Names are matched case-insensitively.

    Raises:
        UnsupportedChipError: No stub for the pair
    """
    memory_type = _normalize_memory(memory)
    if memory_type is not None:
        profile = CHIP_PROFILES.get(f"{chip.strip().lower()}_{memory_type.value}")
        if profile is not None:
            return profile
    raise UnsupportedChipError(chip, memory)


def list_chips() -> List[str]:
    """List chip family names."""
    return sorted({p.chip for p in CHIP_PROFILES.values()})


def list_profiles() -> List[Tuple[str, str]]:
    """List (chip, memory) pairs that have a stub."""
    return sorted((p.chip, p.memory.value) for p in CHIP_PROFILES.values())
