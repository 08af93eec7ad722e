"""
brief_graph.py - Dependency orchestrator for generate-all.

Graph flow:
  START
    → select_sections       (reads the brief, picks the run set, starts the wait budget)
    → [section_worker × N]  (parallel Send() workers, one per independent section)
    → await_prerequisites   (polls the store until scoring's inputs are terminal, or the budget ends)
    → composite_worker      (runs scoring; skipped on timeout)
    → finalize              (final brief snapshot)
    → END

A section failure is recorded in `section_outcomes` and never cancels its
siblings. A worker whose generation outlives the wait budget stops waiting but
leaves the generation running (asyncio.shield); it may still write later.

Compiled WITHOUT a checkpointer: one invocation is one generate-all call.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Literal

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, START, StateGraph
from langgraph.types import Command, Send

from opportunity_brief.configuration import BriefConfiguration
from opportunity_brief.errors import SectionGenerationError
from opportunity_brief.schemas import (
    COMPOSITE_SECTION,
    SCORING_PREREQUISITES,
    SECTION_ORDER,
    BriefRunInput,
    BriefRunState,
)
from opportunity_brief.section_runner import SectionRunner

logger = logging.getLogger(__name__)


def build_brief_graph(runner: SectionRunner):
    """
    Build and compile the generate-all graph around a SectionRunner.

    The runner (and its SectionStore) are shared with the rest of the service
    so per-section locks and in-flight tracking cover every entry point.
    """
    section_store = runner.section_store

    # ── Node 1: choose what to run ────────────────────────────────────────────

    async def select_sections(
        state: BriefRunState,
        config: RunnableConfig,
    ) -> Command[Literal["section_worker", "await_prerequisites"]]:
        cfg = BriefConfiguration.from_runnable_config(config)
        brief_id = state["brief_id"]
        only_missing = state.get("only_missing", False)

        # BriefNotFoundError propagates and aborts the run
        brief = await section_store.get(brief_id)
        run_set = [
            name for name in SECTION_ORDER
            if not only_missing or brief.section(name).status != "COMPLETE"
        ]
        independents = [name for name in run_set if name != COMPOSITE_SECTION]
        run_composite = COMPOSITE_SECTION in run_set
        deadline = asyncio.get_running_loop().time() + cfg.max_prerequisite_wait_seconds

        logger.info(
            "Brief %s: running %s%s",
            brief_id, independents or "no independent sections",
            " then scoring" if run_composite else "",
        )

        update = {
            "sections_to_run": independents,
            "run_composite": run_composite,
            "deadline": deadline,
            "section_outcomes": {},
        }
        if not independents:
            return Command(goto="await_prerequisites", update=update)

        return Command(
            goto=[
                Send(
                    "section_worker",
                    {"brief_id": brief_id, "section": name, "deadline": deadline},
                )
                for name in independents
            ],
            update=update,
        )

    # ── Node 2: one independent section (Send() target) ───────────────────────

    async def section_worker(state: dict) -> dict:
        brief_id = state["brief_id"]
        section = state["section"]
        task = runner.spawn(brief_id, section)
        remaining = max(0.0, state["deadline"] - asyncio.get_running_loop().time())

        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=remaining)
            outcome = "complete"
        except SectionGenerationError:
            outcome = "failed"
        except asyncio.TimeoutError:
            logger.info("Brief %s: stopped waiting on %s; it keeps running", brief_id, section)
            outcome = "still_running"

        return {"section_outcomes": {section: outcome}}

    # ── Node 3: bounded wait for scoring's prerequisites ──────────────────────

    async def await_prerequisites(
        state: BriefRunState,
        config: RunnableConfig,
    ) -> Command[Literal["composite_worker", "finalize"]]:
        if not state.get("run_composite"):
            return Command(
                goto="finalize",
                update={"composite_outcome": "skipped", "pending_prerequisites": []},
            )

        cfg = BriefConfiguration.from_runnable_config(config)
        loop = asyncio.get_running_loop()
        deadline = state["deadline"]

        while True:
            brief = await section_store.get(state["brief_id"])
            pending = brief.unresolved(SCORING_PREREQUISITES)
            if not pending:
                return Command(goto="composite_worker", update={"pending_prerequisites": []})

            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.warning(
                    "Brief %s: prerequisites %s not terminal within %.1fs; scoring deferred",
                    brief.id, pending, cfg.max_prerequisite_wait_seconds,
                )
                return Command(
                    goto="finalize",
                    update={"pending_prerequisites": pending, "composite_outcome": "timed_out"},
                )
            await asyncio.sleep(min(cfg.poll_interval_seconds, remaining))

    # ── Node 4: the composite section ─────────────────────────────────────────

    async def composite_worker(state: BriefRunState) -> dict:
        try:
            await runner.run(state["brief_id"], COMPOSITE_SECTION)
            outcome = "complete"
        except SectionGenerationError:
            outcome = "failed"
        return {
            "composite_outcome": outcome,
            "section_outcomes": {COMPOSITE_SECTION: outcome},
        }

    # ── Node 5: snapshot ──────────────────────────────────────────────────────

    async def finalize(state: BriefRunState) -> dict:
        brief = await section_store.get(state["brief_id"])
        return {"brief": brief.model_dump(mode="json")}

    # ── Build graph ───────────────────────────────────────────────────────────

    builder = StateGraph(BriefRunState, input_schema=BriefRunInput)

    builder.add_node("select_sections", select_sections)
    builder.add_node("section_worker", section_worker)
    builder.add_node("await_prerequisites", await_prerequisites)
    builder.add_node("composite_worker", composite_worker)
    builder.add_node("finalize", finalize)

    builder.add_edge(START, "select_sections")
    # select_sections uses Command(goto=[Send(...)]); no static edge to section_worker

    # After all parallel section_workers finish, the prerequisite wait runs once
    builder.add_edge("section_worker", "await_prerequisites")
    # await_prerequisites routes via Command to composite_worker or finalize

    builder.add_edge("composite_worker", "finalize")
    builder.add_edge("finalize", END)

    return builder.compile()
