"""Call-level status reporting for dsoxscope macros."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

OK = 0
FAILED = -1


@dataclass
class Outcome:
    """Status and warnings collected during one driver call.

    Soft problems are recorded with ``warn`` and leave the status untouched;
    hard problems are recorded with ``fail`` and mark the whole call failed.
    """

    operation: str
    status: int = OK
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """True while no hard failure has been recorded."""
        return self.status == OK

    def warn(self, message: str) -> None:
        logger.warning("%s: %s", self.operation, message)
        self.warnings.append(message)

    def fail(self, message: str) -> None:
        logger.error("%s: %s", self.operation, message)
        self.warnings.append(message)
        self.status = FAILED

    def info(self, message: str) -> None:
        """Log a coercion notice without recording a warning."""
        logger.info("%s: %s", self.operation, message)

    def merge(self, other: Outcome) -> None:
        """Take over the warnings and a failure of a nested call (already logged)."""
        self.warnings.extend(other.warnings)
        if not other.ok:
            self.status = other.status
