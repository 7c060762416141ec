"""
Outcome of one polling pass.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


@dataclass
class CycleReport:
    """Counters for one pass over all devices."""
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    devices: int = 0
    resolved: int = 0
    unresolved: int = 0
    sampled: int = 0
    failed: int = 0
    persisted: int = 0
    unresolved_serials: List[str] = field(default_factory=list)
    failed_serials: List[str] = field(default_factory=list)
    aborted_reason: Optional[str] = None

    @property
    def aborted(self) -> bool:
        return self.aborted_reason is not None

    @property
    def errors(self) -> int:
        return self.unresolved + self.failed

    @property
    def needs_retry(self) -> bool:
        """True when a device was unresolved or errored this pass."""
        return not self.aborted and self.errors > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "devices": self.devices,
            "resolved": self.resolved,
            "unresolved": self.unresolved,
            "sampled": self.sampled,
            "failed": self.failed,
            "persisted": self.persisted,
            "unresolved_serials": list(self.unresolved_serials),
            "failed_serials": list(self.failed_serials),
            "aborted_reason": self.aborted_reason,
        }
