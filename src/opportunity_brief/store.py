"""
store.py - Section Store: persistence of briefs and their section slots.

Each brief is one record in a LangGraph BaseStore:
  namespace : ("opportunity_brief", "briefs")
  key       : "<project_id>#<opportunity_id>"
  value     : Brief.model_dump(mode="json")

Writes are partial (field-granular) read-modify-write under a per-brief
asyncio.Lock, so concurrent sibling sections never clobber each other's
fields. Overall status and updated_at are recomputed on every section write.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Hashable, Optional

from langgraph.store.base import BaseStore
from langgraph.store.memory import InMemoryStore

from opportunity_brief.errors import BriefNotFoundError
from opportunity_brief.schemas import (
    SECTION_ORDER,
    Brief,
    SectionRecord,
    compute_overall_status,
    utc_now,
)

logger = logging.getLogger(__name__)

BRIEFS_NAMESPACE = ("opportunity_brief", "briefs")

_SECTION_FIELDS = frozenset(SectionRecord.model_fields)
_TOP_LEVEL_FIELDS = frozenset(Brief.model_fields) - {"id", "sections", "created_at"}


def make_brief_id(project_id: str, opportunity_id: str) -> str:
    return f"{project_id}#{opportunity_id}"


class KeyedLock:
    """One asyncio.Lock per key, dropped once no task holds or waits on it."""

    def __init__(self):
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = defaultdict(int)

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


class SectionStore:
    """Async access to brief records in a BaseStore."""

    def __init__(self, store: Optional[BaseStore] = None):
        self.store = store if store is not None else InMemoryStore()
        self._locks = KeyedLock()

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def get(self, brief_id: str) -> Brief:
        item = await self.store.aget(BRIEFS_NAMESPACE, brief_id)
        if item is None:
            raise BriefNotFoundError(brief_id)
        return Brief.model_validate(item.value)

    async def find(self, project_id: str, opportunity_id: str) -> Optional[Brief]:
        try:
            return await self.get(make_brief_id(project_id, opportunity_id))
        except BriefNotFoundError:
            return None

    # ── Writes ────────────────────────────────────────────────────────────────

    async def create(self, project_id: str, opportunity_id: str) -> Brief:
        """Create the brief with every section PENDING, or return the existing one."""
        brief_id = make_brief_id(project_id, opportunity_id)
        async with self._locks.hold(brief_id):
            item = await self.store.aget(BRIEFS_NAMESPACE, brief_id)
            if item is not None:
                return Brief.model_validate(item.value)
            brief = Brief(id=brief_id, project_id=project_id, opportunity_id=opportunity_id)
            await self._put(brief)
            logger.info("Initialized brief %s", brief_id)
            return brief

    async def patch_section(
        self,
        brief_id: str,
        section: str,
        *,
        top: Optional[dict[str, Any]] = None,
        **fields: Any,
    ) -> Brief:
        """
        Partially update one section slot. Unspecified fields keep their stored value.

        `top` carries top-level brief fields written in the same locked update,
        so readers never see a section next to stale brief-level fields.
        """
        if section not in SECTION_ORDER:
            raise ValueError(f"Unknown section '{section}'. Choose from: {list(SECTION_ORDER)}")
        unknown = set(fields) - _SECTION_FIELDS
        if unknown:
            raise ValueError(f"Unknown section fields: {sorted(unknown)}")
        unknown = set(top or {}) - _TOP_LEVEL_FIELDS
        if unknown:
            raise ValueError(f"Unknown brief fields: {sorted(unknown)}")

        async with self._locks.hold(brief_id):
            brief = await self.get(brief_id)
            now = utc_now()
            record = brief.section(section).model_copy(update={**fields, "updated_at": now})
            brief.sections[section] = record
            if top:
                brief = brief.model_copy(update=top)
            brief.status = compute_overall_status(
                [brief.section(name).status for name in SECTION_ORDER]
            )
            brief.updated_at = now
            await self._put(brief)
            return brief

    async def patch_top(self, brief_id: str, **fields: Any) -> Brief:
        """Partially update top-level brief fields (decision, ticket bookkeeping)."""
        unknown = set(fields) - _TOP_LEVEL_FIELDS
        if unknown:
            raise ValueError(f"Unknown brief fields: {sorted(unknown)}")

        async with self._locks.hold(brief_id):
            brief = await self.get(brief_id)
            brief = brief.model_copy(update={**fields, "updated_at": utc_now()})
            await self._put(brief)
            return brief

    async def claim_ticket_attempt(self, brief_id: str) -> bool:
        """
        Conditional write: set ticket_attempted only if it is unset.
        Returns True for the single caller that wins the claim.
        """
        async with self._locks.hold(brief_id):
            brief = await self.get(brief_id)
            if brief.ticket_attempted or brief.ticket_id:
                return False
            brief.ticket_attempted = True
            brief.ticket_error = None
            brief.updated_at = utc_now()
            await self._put(brief)
            return True

    async def reset_ticket_attempt(self, brief_id: str) -> Brief:
        return await self.patch_top(brief_id, ticket_attempted=False, ticket_error=None)

    async def _put(self, brief: Brief) -> None:
        await self.store.aput(BRIEFS_NAMESPACE, brief.id, brief.model_dump(mode="json"))
