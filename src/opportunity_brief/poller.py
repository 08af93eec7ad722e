"""
poller.py - Status poller / reconciler for one brief.

Runs on a fixed interval while at least one section is in flight, either
locally marked busy at submission time or reported IN_PROGRESS by the store.
Each tick re-fetches the brief, drops sections whose stored status is terminal
from the busy set, offers the snapshot to the completion trigger, and stops
once nothing is busy locally and every section of the brief is terminal.
A brief that does not exist ends the loop with BriefNotFoundError, which
wait_stopped() re-raises; any other tick failure is logged and retried.

start() is idempotent: at most one poll task exists per poller.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Optional

from opportunity_brief.errors import BriefNotFoundError
from opportunity_brief.schemas import Brief, is_terminal
from opportunity_brief.store import SectionStore
from opportunity_brief.ticketing import CompletionTrigger

logger = logging.getLogger(__name__)


class BriefStatusPoller:
    def __init__(
        self,
        section_store: SectionStore,
        brief_id: str,
        trigger: Optional[CompletionTrigger] = None,
        interval: float = 2.0,
    ):
        self.section_store = section_store
        self.brief_id = brief_id
        self.trigger = trigger
        self.interval = interval
        self.busy: set[str] = set()
        self.last_brief: Optional[Brief] = None
        self.ticks = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def mark_busy(self, sections: Iterable[str]) -> None:
        """Record sections just submitted and make sure polling is active."""
        self.busy.update(sections)
        self.start()

    def ensure_running(self, brief: Brief) -> None:
        """Start polling if the stored brief reports sections in flight."""
        if brief.in_progress_sections():
            self.start()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=f"brief-poller:{self.brief_id}")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def wait_stopped(self, timeout: Optional[float] = None) -> None:
        if self._task is not None:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=timeout)

    def is_done(self, brief: Brief) -> bool:
        return not self.busy and brief.all_terminal()

    async def tick(self) -> Brief:
        """One reconciliation pass. Returns the fresh snapshot."""
        brief = await self.section_store.get(self.brief_id)
        self.ticks += 1
        self.last_brief = brief

        settled = {name for name in self.busy if is_terminal(brief.section(name).status)}
        if settled:
            logger.debug("Brief %s: %s settled", self.brief_id, sorted(settled))
        self.busy -= settled

        if self.trigger is not None:
            await self.trigger.maybe_fire(brief)
        return brief

    async def _loop(self) -> None:
        while True:
            try:
                brief = await self.tick()
            except BriefNotFoundError:
                logger.error("Brief %s does not exist; stopping status poll", self.brief_id)
                raise
            except Exception:
                logger.exception("Status poll for brief %s failed; retrying", self.brief_id)
            else:
                if self.is_done(brief):
                    logger.info("Brief %s settled with status %s", self.brief_id, brief.status)
                    return
            await asyncio.sleep(self.interval)
