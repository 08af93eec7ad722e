"""
test_ticketing.py - Completion trigger semantics and ticket content.
"""

from unittest.mock import AsyncMock, patch

import pytest

from opportunity_brief.errors import TicketTriggerError
from opportunity_brief.schemas import Brief, SectionRecord
from opportunity_brief.ticketing import (
    CompletionTrigger,
    LinearTicketClient,
    build_ticket_description,
    build_ticket_title_and_labels,
)

from conftest import OPPORTUNITY_ID, PROJECT_ID, SECTION_RESULTS, FakeTicketAction


async def _scored_brief(section_store, decision="GO"):
    brief = await section_store.create(PROJECT_ID, OPPORTUNITY_ID)
    await section_store.patch_section(
        brief.id, "scoring", status="COMPLETE", data={"decision": decision}
    )
    return await section_store.patch_top(brief.id, decision=decision)


def _brief_with(**sections) -> Brief:
    brief = Brief(id="p#o", project_id="p", opportunity_id="opp-9")
    for name, data in sections.items():
        brief.sections[name] = SectionRecord(status="COMPLETE", data=data)
    return brief


@pytest.mark.asyncio
async def test_not_ready_until_scoring_complete_with_decision(section_store):
    action = FakeTicketAction()
    trigger = CompletionTrigger(section_store, action)
    brief = await section_store.create(PROJECT_ID, OPPORTUNITY_ID)

    assert await trigger.maybe_fire(brief) == "not_ready"

    brief = await section_store.patch_section(brief.id, "scoring", status="COMPLETE", data={})
    assert await trigger.maybe_fire(brief) == "not_ready"
    assert action.calls == []


@pytest.mark.asyncio
async def test_fires_once_and_records_ticket(section_store):
    action = FakeTicketAction()
    trigger = CompletionTrigger(section_store, action)
    brief = await _scored_brief(section_store)

    assert await trigger.maybe_fire(brief) == "fired"
    assert await trigger.maybe_fire(brief) == "already_attempted"
    assert await trigger.maybe_fire(await section_store.get(brief.id)) == "not_ready"

    stored = await section_store.get(brief.id)
    assert action.calls == [brief.id]
    assert stored.ticket_attempted is True
    assert stored.ticket_url == "https://linear.app/acme/issue/RFP-1"


@pytest.mark.asyncio
async def test_failed_action_is_not_retried_until_reset(section_store):
    action = FakeTicketAction(fail=True)
    trigger = CompletionTrigger(section_store, action)
    brief = await _scored_brief(section_store)

    assert await trigger.maybe_fire(brief) == "failed"
    stored = await section_store.get(brief.id)
    assert stored.ticket_attempted is True
    assert "Linear is down" in stored.ticket_error
    assert stored.section("scoring").status == "COMPLETE"

    assert await trigger.maybe_fire(stored) == "already_attempted"
    assert len(action.calls) == 1

    action.fail = False
    reset = await trigger.reset(brief.id)
    assert reset.ticket_attempted is False
    assert await trigger.maybe_fire(reset) == "fired"
    assert len(action.calls) == 2


@pytest.mark.asyncio
async def test_service_reset_ticket(service, ticket_action):
    ticket_action.fail = True
    brief_id = await service.init_brief(PROJECT_ID, OPPORTUNITY_ID)
    brief = await service.generate_all(brief_id)
    assert brief.ticket_error

    ticket_action.fail = False
    await service.reset_ticket(brief_id)
    await service.watch(brief_id).wait_stopped(timeout=1)

    brief = await service.get_brief(brief_id)
    assert brief.ticket_id == "lin_1"
    assert len(ticket_action.calls) == 2


@pytest.mark.parametrize(
    "decision, prefix, label",
    [
        ("GO", "[RFP] GO", "go"),
        ("NO_GO", "[RFP] NO-GO", "no-go"),
        ("CONDITIONAL_GO", "[RFP] REVIEW", "needs-review"),
    ],
)
def test_title_and_labels_follow_decision(decision, prefix, label):
    brief = _brief_with(summary=SECTION_RESULTS["summary"], scoring={"decision": decision})
    title, labels = build_ticket_title_and_labels(brief)
    assert title == f"{prefix}: Grants Platform Modernisation (DOE)"
    assert labels == ["RFP", "Auto-Generated", label]


def test_description_sorts_deadlines_and_lists_red_flags():
    brief = _brief_with(
        summary={"agency": "DOE", "naics": "541512", "summary": "Modernise the grants platform."},
        deadlines={
            "submission_deadline_iso": "2026-11-20T17:00:00-05:00",
            "deadlines": [
                {"type": "PROPOSAL_DUE", "date_time_iso": "2026-11-20T17:00:00-05:00"},
                {"type": "QUESTIONS_DUE", "label": "Questions due", "date_time_iso": "2026-11-01T12:00:00-05:00"},
                {"type": "SITE_VISIT", "label": "Site visit", "raw_text": "To be announced"},
            ],
        },
        risks={"red_flags": [{"severity": "HIGH", "flag": "Incumbent advantage", "why_it_matters": "Hard to unseat"}]},
        scoring={"decision": "GO", "composite_score": 3.8, "confidence": 70},
    )

    text = build_ticket_description(brief)

    assert "**Agency:** DOE" in text
    assert text.index("Questions due") < text.index("Proposal Submission Deadline")
    assert text.index("Proposal Submission Deadline") < text.index("Site visit")
    assert "submit 24 hours early" in text
    assert "**Composite Score:** 3.8/5" in text
    assert "**[HIGH]** Incumbent advantage" in text


@pytest.mark.asyncio
async def test_linear_client_requires_credentials(monkeypatch):
    monkeypatch.delenv("LINEAR_API_KEY", raising=False)
    monkeypatch.delenv("LINEAR_TEAM_ID", raising=False)
    client = LinearTicketClient()
    with pytest.raises(TicketTriggerError):
        await client.create_ticket(_brief_with(scoring={"decision": "GO"}))


@pytest.mark.asyncio
async def test_linear_client_creates_issue_with_labels_and_due_date():
    client = LinearTicketClient(api_key="lin_api_test", team_id="team-1")
    brief = _brief_with(
        summary=SECTION_RESULTS["summary"],
        deadlines=SECTION_RESULTS["deadlines"],
        scoring={"decision": "GO"},
    )
    responses = [
        {"issueLabels": {"nodes": [{"id": "lbl-rfp", "name": "RFP"}, {"id": "lbl-go", "name": "go"}]}},
        {"issueCreate": {"success": True, "issue": {"id": "iss-1", "identifier": "RFP-7", "url": "https://linear.app/i/RFP-7"}}},
    ]

    with patch.object(LinearTicketClient, "_graphql", AsyncMock(side_effect=responses)) as mock_gql:
        ticket = await client.create_ticket(brief)

    assert ticket.identifier == "RFP-7"
    issue_input = mock_gql.await_args_list[1].args[2]["input"]
    assert issue_input["teamId"] == "team-1"
    assert issue_input["labelIds"] == ["lbl-rfp", "lbl-go"]
    assert issue_input["dueDate"] == "2026-11-20"
    assert issue_input["title"].startswith("[RFP] GO")


@pytest.mark.asyncio
async def test_linear_client_rejects_unsuccessful_create():
    client = LinearTicketClient(api_key="lin_api_test", team_id="team-1")
    responses = [{"issueLabels": {"nodes": []}}, {"issueCreate": {"success": False}}]

    with patch.object(LinearTicketClient, "_graphql", AsyncMock(side_effect=responses)):
        with pytest.raises(TicketTriggerError):
            await client.create_ticket(_brief_with(scoring={"decision": "GO"}))
