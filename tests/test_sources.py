"""
test_sources.py - Solicitation text providers (Supabase client mocked).
"""

from unittest.mock import MagicMock

import pytest

from opportunity_brief.errors import SolicitationUnavailableError
from opportunity_brief.schemas import Brief
from opportunity_brief.sources import SupabaseSolicitationSource, truncate_text


def _brief() -> Brief:
    return Brief(id="proj-1#opp-1", project_id="proj-1", opportunity_id="opp-1")


def _client(rows):
    client = MagicMock()
    query = client.table.return_value.select.return_value.eq.return_value.eq.return_value
    query.execute.return_value = MagicMock(data=rows)
    return client


@pytest.mark.asyncio
async def test_text_keys_are_sorted():
    client = _client([{"text_key": "b/amendment.txt"}, {"text_key": "a/rfp.txt"}])
    source = SupabaseSolicitationSource(client=client)

    keys = await source.text_keys(_brief())

    assert keys == ["a/rfp.txt", "b/amendment.txt"]
    client.table.assert_called_with("solicitation_texts")


@pytest.mark.asyncio
async def test_load_text_joins_documents_in_key_order():
    rows = [
        {"text_key": "b", "content": "Amendment 1 moves the due date."},
        {"text_key": "a", "content": "Base solicitation for network services."},
    ]
    source = SupabaseSolicitationSource(client=_client(rows))

    text = await source.load_text(_brief())

    assert text.startswith("Base solicitation")
    assert text.endswith("moves the due date.")


@pytest.mark.asyncio
async def test_load_text_rejects_short_text():
    source = SupabaseSolicitationSource(client=_client([{"text_key": "a", "content": "tiny"}]))
    with pytest.raises(SolicitationUnavailableError):
        await source.load_text(_brief())


def test_truncate_text_leaves_short_text_alone():
    assert truncate_text("short", 10) == "short"
    assert truncate_text("abcdefghij", 4) == "abcd\n\n[TRUNCATED]"
