"""
errors.py - Exception hierarchy for brief generation.

Section-level failures are recorded on the brief before they are raised, so a
caller catching any of these can always re-read the store for the final state.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from opportunity_brief.schemas import Brief


class BriefError(Exception):
    """Base class for every error raised by this package."""


class BriefNotFoundError(BriefError):
    def __init__(self, brief_id: str):
        super().__init__(f"Brief '{brief_id}' has not been initialized")
        self.brief_id = brief_id


class SectionGenerationError(BriefError):
    """A section generator failed. The FAILED status is already persisted."""

    def __init__(self, section: str, message: str):
        super().__init__(f"Section '{section}' failed: {message}")
        self.section = section
        self.message = message


class PrerequisitesNotReadyError(BriefError):
    """The composite section was requested while prerequisites are still unresolved."""

    def __init__(self, section: str, missing: Iterable[str]):
        self.section = section
        self.missing = sorted(missing)
        super().__init__(
            f"Cannot generate '{section}' yet; unresolved prerequisites: "
            + ", ".join(self.missing)
        )


class PrerequisiteTimeoutError(BriefError):
    """The bounded wait for prerequisites expired before all of them were terminal."""

    def __init__(self, brief: "Brief", pending: Iterable[str], waited_seconds: float):
        self.brief = brief
        self.pending = sorted(pending)
        self.waited_seconds = waited_seconds
        super().__init__(
            f"Gave up waiting {waited_seconds:.1f}s for prerequisites of brief "
            f"'{brief.id}': " + ", ".join(self.pending)
        )


class SolicitationUnavailableError(BriefError):
    """No usable solicitation text could be loaded for the opportunity."""


class TicketTriggerError(BriefError):
    """The downstream ticket action failed. Never retried automatically."""
