"""
section_runner.py - Section state machine.

  PENDING ──► IN_PROGRESS ──► COMPLETE
                   │
                   └────────► FAILED

COMPLETE and FAILED may move back to IN_PROGRESS on a new attempt.

run() is idempotent: when the section is COMPLETE and the hash of its inputs
is unchanged, the stored payload is returned without calling the generator or
writing to the store. A per-(brief, section) asyncio.Lock wraps the whole
read-decide-write sequence, so a duplicate concurrent run waits for the first
one and then resolves as a cache hit.

Failures are always persisted (status FAILED, error message, data cleared)
before SectionGenerationError reaches the caller.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from opportunity_brief.errors import SectionGenerationError
from opportunity_brief.generators import SectionGateway
from opportunity_brief.hashing import (
    build_section_input_hash,
    build_source_fingerprint,
    prerequisite_digest,
)
from opportunity_brief.schemas import COMPOSITE_SECTION, SECTION_ORDER, Brief
from opportunity_brief.sources import SolicitationSource
from opportunity_brief.store import KeyedLock, SectionStore

logger = logging.getLogger(__name__)

# Top-level brief fields mirrored from the composite section's payload
_DECISION_FIELDS = ("composite_score", "recommendation", "decision", "confidence")


class SectionRunner:
    def __init__(
        self,
        section_store: SectionStore,
        gateway: SectionGateway,
        sources: SolicitationSource,
    ):
        self.section_store = section_store
        self.gateway = gateway
        self.sources = sources
        self._locks = KeyedLock()
        self._inflight: set[asyncio.Task] = set()

    async def source_fingerprint(self, brief: Brief, section: str) -> str:
        text_keys = await self.sources.text_keys(brief)
        prerequisites = prerequisite_digest(brief) if section == COMPOSITE_SECTION else None
        return build_source_fingerprint(brief.opportunity_id, text_keys, prerequisites)

    async def run(
        self,
        brief_id: str,
        section: str,
        *,
        force: bool = False,
        source_fingerprint: Optional[str] = None,
    ) -> dict:
        """
        Generate one section (or return its cached payload).

        Raises:
            BriefNotFoundError: the brief was never initialized.
            SectionGenerationError: the generator failed; FAILED is already stored.
        """
        if section not in SECTION_ORDER:
            raise ValueError(f"Unknown section '{section}'. Choose from: {list(SECTION_ORDER)}")

        async with self._locks.hold((brief_id, section)):
            brief = await self.section_store.get(brief_id)
            record = brief.section(section)

            try:
                fingerprint = source_fingerprint or await self.source_fingerprint(brief, section)
            except Exception as exc:
                await self._record_failure(brief_id, section, exc)
                raise SectionGenerationError(section, _describe(exc)) from exc

            input_hash = build_section_input_hash(brief_id, section, fingerprint)
            if not force and record.status == "COMPLETE" and record.input_hash == input_hash:
                logger.info("Section %s of brief %s is up to date; skipping", section, brief_id)
                return record.data or {}

            await self.section_store.patch_section(
                brief_id, section,
                top=_decision_update(section, None),
                status="IN_PROGRESS", input_hash=input_hash, error=None,
            )
            logger.info("Generating section %s for brief %s (force=%s)", section, brief_id, force)

            try:
                data = await self.gateway.generate(section, brief)
            except Exception as exc:
                await self._record_failure(brief_id, section, exc)
                if isinstance(exc, SectionGenerationError):
                    raise
                raise SectionGenerationError(section, _describe(exc)) from exc

            await self.section_store.patch_section(
                brief_id, section,
                top=_decision_update(section, data),
                status="COMPLETE", data=data, error=None,
            )
            logger.info("Section %s of brief %s complete", section, brief_id)
            return data

    async def _record_failure(self, brief_id: str, section: str, exc: Exception) -> None:
        message = exc.message if isinstance(exc, SectionGenerationError) else _describe(exc)
        logger.warning("Section %s of brief %s failed: %s", section, brief_id, message)
        await self.section_store.patch_section(
            brief_id, section,
            top=_decision_update(section, None),
            status="FAILED", error=message, data=None,
        )

    # ── Background execution ──────────────────────────────────────────────────

    def spawn(self, brief_id: str, section: str, *, force: bool = False) -> asyncio.Task:
        """Start run() as a task that keeps going even if the caller stops waiting."""
        task = asyncio.create_task(
            self.run(brief_id, section, force=force),
            name=f"brief-section:{brief_id}:{section}",
        )
        self._inflight.add(task)
        task.add_done_callback(self._forget)
        return task

    def _forget(self, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        # Outcome is already persisted; mark the exception retrieved.
        if not task.cancelled():
            task.exception()

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    async def drain(self) -> None:
        """Wait for every spawned generation, including ones a caller stopped waiting on."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)


def _describe(exc: BaseException) -> str:
    return f"{type(exc).__name__}: {exc}"


def _decision_update(section: str, data: Optional[dict]) -> Optional[dict]:
    """Brief-level decision fields to write alongside a composite section update."""
    if section != COMPOSITE_SECTION:
        return None
    return {f: (data or {}).get(f) for f in _DECISION_FIELDS}
