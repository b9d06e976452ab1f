"""
Result objects for core operations.

Provides a unified result structure the CLI can print and scripts can dump
as JSON.
"""

from dataclasses import dataclass, field
from typing import List, Dict, Any


@dataclass
class OperationResult:
    """
    Unified result object for core operations.

    Attributes:
        ok: Whether the operation completed successfully
        operation: Name of the operation (e.g., "write_flash")
        chip: Target chip and memory, e.g. "SF32LB52/nor"
        regions: Flash ranges involved, e.g. ["0x12000000-0x12010000"]
        bytes_len: Number of bytes written to flash
        checksums: CRC32 per chunk address
        warnings: Non-blocking issues encountered
        errors: Blocking errors that caused failure
        metadata: Additional operation-specific data
        logs: Captured log lines from the operation
    """
    ok: bool
    operation: str
    chip: str = ""
    regions: List[str] = field(default_factory=list)
    bytes_len: int = 0
    checksums: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    logs: List[str] = field(default_factory=list)

    def add_warning(self, message: str) -> None:
        """Add a warning message."""
        self.warnings.append(message)

    def add_error(self, message: str) -> None:
        """Add an error message and mark result as failed."""
        self.errors.append(message)
        self.ok = False

    def to_summary(self) -> str:
        """Human-readable summary for CLI output."""
        status = "SUCCESS" if self.ok else "FAILED"
        lines = [f"[{status}] {self.operation}"]

        if self.chip:
            lines.append(f"  Chip: {self.chip}")
        for region in self.regions:
            lines.append(f"  Region: {region}")
        if self.bytes_len:
            lines.append(f"  Bytes written: {self.bytes_len:,}")

        if self.warnings:
            lines.append("  Warnings:")
            for warn in self.warnings:
                lines.append(f"    - {warn}")

        if self.errors:
            lines.append("  Errors:")
            for err in self.errors:
                lines.append(f"    - {err}")

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "ok": self.ok,
            "operation": self.operation,
            "chip": self.chip,
            "regions": self.regions,
            "bytes_len": self.bytes_len,
            "checksums": self.checksums,
            "warnings": self.warnings,
            "errors": self.errors,
            "metadata": self.metadata,
            "logs": self.logs,
        }

    @classmethod
    def failure(
        cls,
        operation: str,
        error: str,
        chip: str = "",
        **kwargs,
    ) -> "OperationResult":
        """Create a failed result."""
        result = cls(ok=False, operation=operation, chip=chip, **kwargs)
        result.errors.append(error)
        return result
