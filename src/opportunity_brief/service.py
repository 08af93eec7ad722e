"""
service.py - Entry points for callers (API handlers, jobs, tests).

BriefService wires the store, section runner, generate-all graph, completion
trigger and per-brief status pollers together:

  init_brief        → create (or reuse) the brief for a (project, opportunity)
  get_brief         → read one brief
  generate_section  → run one section outside the dependency rule
  generate_all      → run the generate-all graph (independent sections, then scoring)
  watch             → start/refresh the status poller for a brief
  reset_ticket      → manual retry of the completion side effect
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from langgraph.store.base import BaseStore

from opportunity_brief.configuration import BriefConfiguration
from opportunity_brief.errors import PrerequisitesNotReadyError, PrerequisiteTimeoutError
from opportunity_brief.generators import LLMSectionGateway, SectionGateway
from opportunity_brief.orchestration.brief_graph import build_brief_graph
from opportunity_brief.poller import BriefStatusPoller
from opportunity_brief.schemas import (
    COMPOSITE_SECTION,
    SCORING_PREREQUISITES,
    SECTION_ORDER,
    Brief,
)
from opportunity_brief.section_runner import SectionRunner
from opportunity_brief.sources import SolicitationSource, SupabaseSolicitationSource
from opportunity_brief.store import SectionStore
from opportunity_brief.ticketing import CompletionTrigger, LinearTicketClient, TicketAction

logger = logging.getLogger(__name__)


class BriefService:
    def __init__(
        self,
        store: Optional[BaseStore] = None,
        sources: Optional[SolicitationSource] = None,
        gateway: Optional[SectionGateway] = None,
        ticket_action: Optional[TicketAction] = None,
        config: Optional[BriefConfiguration] = None,
    ):
        self.config = config or BriefConfiguration()
        self.section_store = SectionStore(store)
        self.sources = sources if sources is not None else SupabaseSolicitationSource()
        self.gateway = gateway if gateway is not None else LLMSectionGateway(self.sources, self.config)
        self.runner = SectionRunner(self.section_store, self.gateway, self.sources)
        self.trigger = CompletionTrigger(
            self.section_store,
            ticket_action if ticket_action is not None
            else LinearTicketClient(priority=self.config.ticket_priority),
        )
        self.graph = build_brief_graph(self.runner)
        self._pollers: dict[str, BriefStatusPoller] = {}

    def _run_config(self) -> dict:
        return {
            "configurable": {
                "poll_interval_seconds": self.config.poll_interval_seconds,
                "max_prerequisite_wait_seconds": self.config.max_prerequisite_wait_seconds,
            }
        }

    # ── Reads / init ──────────────────────────────────────────────────────────

    async def get_brief(self, brief_id: str) -> Brief:
        return await self.section_store.get(brief_id)

    async def get_brief_by_opportunity(self, project_id: str, opportunity_id: str) -> Optional[Brief]:
        return await self.section_store.find(project_id, opportunity_id)

    async def init_brief(self, project_id: str, opportunity_id: str) -> str:
        brief = await self.section_store.create(project_id, opportunity_id)
        return brief.id

    # ── Generation ────────────────────────────────────────────────────────────

    async def generate_section(self, brief_id: str, section: str, force: bool = False) -> Brief:
        """
        Run one section now. Scoring is rejected while any of its prerequisites
        is PENDING or IN_PROGRESS; a FAILED prerequisite counts as resolved.
        """
        if section not in SECTION_ORDER:
            raise ValueError(f"Unknown section '{section}'. Choose from: {list(SECTION_ORDER)}")

        brief = await self.section_store.get(brief_id)
        if section == COMPOSITE_SECTION:
            missing = brief.unresolved(SCORING_PREREQUISITES)
            if missing:
                raise PrerequisitesNotReadyError(section, missing)

        await self.runner.run(brief_id, section, force=force)
        brief = await self.section_store.get(brief_id)
        if section == COMPOSITE_SECTION:
            await self.trigger.maybe_fire(brief)
            brief = await self.section_store.get(brief_id)
        return brief

    async def generate_all(self, brief_id: str, only_missing: bool = False) -> Brief:
        """
        Run every section (or only those not COMPLETE), then scoring once its
        prerequisites are terminal.

        Raises:
            BriefNotFoundError: the brief was never initialized.
            PrerequisiteTimeoutError: prerequisites did not settle within the wait
                budget; independent results are stored and generations still in
                flight keep running.
        """
        final = await self.graph.ainvoke(
            {"brief_id": brief_id, "only_missing": only_missing},
            config=self._run_config(),
        )
        brief = Brief.model_validate(final["brief"])

        if final.get("composite_outcome") == "timed_out":
            logger.warning(
                "generate_all(%s): scoring skipped, prerequisites still pending: %s",
                brief_id, final.get("pending_prerequisites", []),
            )
            raise PrerequisiteTimeoutError(
                brief,
                final.get("pending_prerequisites", []),
                self.config.max_prerequisite_wait_seconds,
            )

        if brief.section(COMPOSITE_SECTION).status == "COMPLETE":
            if await self.trigger.maybe_fire(brief) != "not_ready":
                brief = await self.section_store.get(brief_id)
        return brief

    async def drain(self) -> None:
        """Wait for generations that outlived a generate_all wait budget."""
        await self.runner.drain()

    # ── Polling / side effect ─────────────────────────────────────────────────

    def poller(self, brief_id: str) -> BriefStatusPoller:
        if brief_id not in self._pollers:
            self._pollers[brief_id] = BriefStatusPoller(
                self.section_store,
                brief_id,
                trigger=self.trigger,
                interval=self.config.status_poll_interval_seconds,
            )
        return self._pollers[brief_id]

    def watch(self, brief_id: str, sections: Iterable[str] = ()) -> BriefStatusPoller:
        poller = self.poller(brief_id)
        sections = list(sections)
        if sections:
            poller.mark_busy(sections)
        else:
            poller.start()
        return poller

    async def reset_ticket(self, brief_id: str) -> Brief:
        return await self.trigger.reset(brief_id)

    async def close(self) -> None:
        for poller in self._pollers.values():
            await poller.stop()
