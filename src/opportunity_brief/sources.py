"""
Solicitation text providers (read-only).

The section generators read the opportunity's extracted solicitation text
through a SolicitationSource. The list of text keys also feeds the input hash,
so uploading a new document invalidates every cached section.

Supabase calls:
  - Sync supabase-py client called via run_in_executor for async safety.
  - Table `solicitation_texts` (opportunity_id, project_id, text_key, content).
"""

from __future__ import annotations

import asyncio
import os
from typing import Optional, Protocol

from supabase import Client, create_client

from opportunity_brief.errors import SolicitationUnavailableError
from opportunity_brief.schemas import Brief

MIN_SOLICITATION_CHARS = 20
TRUNCATION_MARKER = "\n\n[TRUNCATED]"


def truncate_text(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_MARKER


def join_documents(texts: list[str]) -> str:
    """Concatenate document texts, rejecting results too short to analyse."""
    merged = "\n\n".join(t.strip() for t in texts if t and t.strip())
    if len(merged) < MIN_SOLICITATION_CHARS:
        raise SolicitationUnavailableError(
            "Solicitation text is empty or too short to analyse"
        )
    return merged


class SolicitationSource(Protocol):
    async def text_keys(self, brief: Brief) -> list[str]: ...

    async def load_text(self, brief: Brief) -> str: ...


class StaticSolicitationSource:
    """In-memory source keyed by opportunity id. Useful for tests and local runs."""

    def __init__(self, documents: Optional[dict[str, dict[str, str]]] = None):
        # {opportunity_id: {text_key: content}}
        self.documents: dict[str, dict[str, str]] = documents or {}

    def add(self, opportunity_id: str, text_key: str, content: str) -> None:
        self.documents.setdefault(opportunity_id, {})[text_key] = content

    async def text_keys(self, brief: Brief) -> list[str]:
        return sorted(self.documents.get(brief.opportunity_id, {}))

    async def load_text(self, brief: Brief) -> str:
        docs = self.documents.get(brief.opportunity_id, {})
        return join_documents([docs[k] for k in sorted(docs)])


class SupabaseSolicitationSource:
    """Reads extracted solicitation texts from the `solicitation_texts` table."""

    def __init__(self, client: Optional[Client] = None, table: str = "solicitation_texts"):
        self._client = client
        self.table = table

    async def _get_client(self) -> Client:
        if self._client is None:
            loop = asyncio.get_running_loop()
            self._client = await loop.run_in_executor(
                None,
                lambda: create_client(
                    os.getenv("SUPABASE_URL"),
                    os.getenv("SUPABASE_SERVICE_KEY"),
                ),
            )
        return self._client

    async def _rows(self, brief: Brief, columns: str) -> list[dict]:
        client = await self._get_client()
        loop = asyncio.get_running_loop()
        response = await loop.run_in_executor(
            None,
            lambda: client.table(self.table)
            .select(columns)
            .eq("project_id", brief.project_id)
            .eq("opportunity_id", brief.opportunity_id)
            .execute(),
        )
        return response.data or []

    async def text_keys(self, brief: Brief) -> list[str]:
        rows = await self._rows(brief, "text_key")
        return sorted(row["text_key"] for row in rows if row.get("text_key"))

    async def load_text(self, brief: Brief) -> str:
        rows = await self._rows(brief, "text_key,content")
        rows.sort(key=lambda r: r.get("text_key") or "")
        return join_documents([row.get("content") or "" for row in rows])
