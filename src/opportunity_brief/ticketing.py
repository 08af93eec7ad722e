"""
ticketing.py - Completion side effect: one tracking ticket per brief.

CompletionTrigger fires the first time the scoring section is COMPLETE with a
decision present. The brief's `ticket_attempted` flag is claimed with a
conditional write *before* the action runs, so a crash mid-action never leads
to a second ticket. A failed action leaves the flag set and records
`ticket_error`; only an explicit reset() re-arms it.

LinearTicketClient is the production action (Linear GraphQL API over aiohttp).
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Literal, Optional, Protocol

import aiohttp

from opportunity_brief.errors import TicketTriggerError
from opportunity_brief.schemas import COMPOSITE_SECTION, Brief, TicketRef
from opportunity_brief.store import SectionStore

logger = logging.getLogger(__name__)

TriggerOutcome = Literal["fired", "failed", "already_attempted", "not_ready"]


class TicketAction(Protocol):
    async def create_ticket(self, brief: Brief) -> TicketRef: ...


def brief_decision(brief: Brief) -> Optional[str]:
    scoring = brief.section_data(COMPOSITE_SECTION) or {}
    return brief.decision or scoring.get("decision")


def is_ready_for_ticket(brief: Brief) -> bool:
    return (
        brief.section(COMPOSITE_SECTION).status == "COMPLETE"
        and brief_decision(brief) is not None
        and not brief.ticket_id
    )


class CompletionTrigger:
    def __init__(self, section_store: SectionStore, action: TicketAction):
        self.section_store = section_store
        self.action = action

    async def maybe_fire(self, brief: Brief) -> TriggerOutcome:
        """Offer a brief snapshot to the trigger. Safe to call on every poll."""
        if not is_ready_for_ticket(brief):
            return "not_ready"
        if brief.ticket_attempted:
            return "already_attempted"
        if not await self.section_store.claim_ticket_attempt(brief.id):
            return "already_attempted"

        try:
            ticket = await self.action.create_ticket(brief)
        except Exception as exc:
            logger.exception("Ticket creation failed for brief %s", brief.id)
            await self.section_store.patch_top(
                brief.id, ticket_error=f"{type(exc).__name__}: {exc}"
            )
            return "failed"

        await self.section_store.patch_top(
            brief.id,
            ticket_id=ticket.id,
            ticket_identifier=ticket.identifier,
            ticket_url=ticket.url,
            ticket_error=None,
        )
        logger.info(
            "Created ticket %s for brief %s (%s)",
            ticket.identifier or ticket.id, brief.id, brief_decision(brief),
        )
        return "fired"

    async def reset(self, brief_id: str) -> Brief:
        """Manual recovery: clear the attempted flag so the next poll may fire again."""
        logger.info("Resetting ticket attempt for brief %s", brief_id)
        return await self.section_store.reset_ticket_attempt(brief_id)


# ── Ticket content ────────────────────────────────────────────────────────────

def build_ticket_title_and_labels(brief: Brief) -> tuple[str, list[str]]:
    summary = brief.section_data("summary") or {}
    decision = brief_decision(brief)
    labels = ["RFP", "Auto-Generated"]

    if decision == "GO":
        prefix = "[RFP] GO"
        labels.append("go")
    elif decision == "NO_GO":
        prefix = "[RFP] NO-GO"
        labels.append("no-go")
    else:
        prefix = "[RFP] REVIEW"
        labels.append("needs-review")

    name = summary.get("title") or summary.get("solicitation_number") or brief.opportunity_id
    agency = summary.get("agency")
    title = f"{prefix}: {name}" + (f" ({agency})" if agency else "")
    return title, labels


def _format_date(iso: str) -> str:
    try:
        return datetime.fromisoformat(iso).strftime("%b %d, %Y %I:%M %p %Z").strip()
    except ValueError:
        return iso


def _parse_iso(iso: str) -> datetime:
    parsed = datetime.fromisoformat(iso)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _sort_key(entry: dict) -> tuple[int, Optional[datetime]]:
    try:
        return (0, _parse_iso(entry["date_time_iso"]))
    except (TypeError, ValueError, KeyError):
        return (1, None)


def build_ticket_description(brief: Brief) -> str:
    """Markdown body: key facts, deadlines (soonest first), score, top red flags."""
    summary = brief.section_data("summary") or {}
    deadlines = brief.section_data("deadlines") or {}
    scoring = brief.section_data(COMPOSITE_SECTION) or {}
    risks = brief.section_data("risks") or {}

    parts = ["# RFP Opportunity", ""]
    if summary.get("agency"):
        parts.append(f"**Agency:** {summary['agency']}")
    if summary.get("naics"):
        parts.append(f"**NAICS:** {summary['naics']}")
    if summary.get("contract_type"):
        parts.append(f"**Contract Type:** {summary['contract_type']}")
    if summary.get("estimated_value_usd"):
        parts.append(f"**Estimated Value:** ${summary['estimated_value_usd']:,.0f} USD")
    if summary.get("place_of_performance"):
        parts.append(f"**Place of Performance:** {summary['place_of_performance']}")
    parts.append("")

    if summary.get("summary"):
        parts += ["## Summary", summary["summary"], ""]

    entries: list[dict] = []
    if deadlines.get("submission_deadline_iso"):
        entries.append({
            "label": "Proposal Submission Deadline",
            "date_time_iso": deadlines["submission_deadline_iso"],
            "primary": True,
        })
    for d in deadlines.get("deadlines") or []:
        if d.get("type") == "PROPOSAL_DUE" and entries:
            continue
        entries.append({
            "label": d.get("label") or d.get("type") or "Deadline",
            "date_time_iso": d.get("date_time_iso"),
            "raw_text": d.get("raw_text"),
            "timezone": d.get("timezone"),
        })
    if entries:
        parts.append("## Deadlines")
        for entry in sorted(entries, key=_sort_key):
            iso = entry.get("date_time_iso")
            if iso:
                tz = f" ({entry['timezone']})" if entry.get("timezone") else ""
                parts.append(f"- **{entry['label']}:** {_format_date(iso)}{tz}")
                if entry.get("primary") and _sort_key(entry)[0] == 0:
                    early = _parse_iso(iso) - timedelta(hours=24)
                    parts.append(
                        f"  - *Recommended: submit 24 hours early by {_format_date(early.isoformat())}*"
                    )
            elif entry.get("raw_text"):
                parts.append(f"- **{entry['label']}:** {entry['raw_text']}")
        parts.append("")

    score = brief.composite_score or scoring.get("composite_score")
    if score:
        parts += ["## Scoring", f"**Composite Score:** {score}/5"]
        confidence = brief.confidence or scoring.get("confidence")
        if confidence:
            parts.append(f"**Confidence:** {confidence}%")
        parts.append("")

    red_flags = risks.get("red_flags") or []
    if red_flags:
        parts.append("## Key Risks")
        for risk in red_flags[:3]:
            parts.append(f"- **[{risk.get('severity')}]** {risk.get('flag')}")
            if risk.get("why_it_matters"):
                parts.append(f"  - {risk['why_it_matters']}")
        parts.append("")

    return "\n".join(parts)


# ── Linear client ─────────────────────────────────────────────────────────────

LINEAR_API_URL = "https://api.linear.app/graphql"

_LABELS_QUERY = """
query Labels($names: [String!]) {
  issueLabels(filter: { name: { in: $names } }) { nodes { id name } }
}
"""

_ISSUE_CREATE_MUTATION = """
mutation IssueCreate($input: IssueCreateInput!) {
  issueCreate(input: $input) {
    success
    issue { id identifier url }
  }
}
"""


class LinearTicketClient:
    """Creates tracking issues in Linear."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        team_id: Optional[str] = None,
        priority: int = 3,
        url: Optional[str] = None,
    ):
        self.api_key = api_key or os.getenv("LINEAR_API_KEY")
        self.team_id = team_id or os.getenv("LINEAR_TEAM_ID")
        self.priority = priority
        self.url = url or os.getenv("LINEAR_API_URL", LINEAR_API_URL)

    async def _graphql(self, session: aiohttp.ClientSession, query: str, variables: dict) -> dict:
        async with session.post(
            self.url,
            headers={
                "Authorization": self.api_key,
                "Content-Type": "application/json",
            },
            json={"query": query, "variables": variables},
        ) as resp:
            resp.raise_for_status()
            result = await resp.json()
        if result.get("errors"):
            raise TicketTriggerError(f"Linear API error: {result['errors']}")
        return result.get("data") or {}

    async def create_ticket(self, brief: Brief) -> TicketRef:
        if not self.api_key or not self.team_id:
            raise TicketTriggerError("LINEAR_API_KEY and LINEAR_TEAM_ID must be set")

        title, labels = build_ticket_title_and_labels(brief)
        deadlines = brief.section_data("deadlines") or {}
        issue_input = {
            "teamId": self.team_id,
            "title": title,
            "description": build_ticket_description(brief),
            "priority": self.priority,
        }
        due = deadlines.get("submission_deadline_iso")
        if due:
            issue_input["dueDate"] = due[:10]

        async with aiohttp.ClientSession() as session:
            label_data = await self._graphql(session, _LABELS_QUERY, {"names": labels})
            label_ids = [n["id"] for n in (label_data.get("issueLabels") or {}).get("nodes", [])]
            if label_ids:
                issue_input["labelIds"] = label_ids
            data = await self._graphql(session, _ISSUE_CREATE_MUTATION, {"input": issue_input})

        created = data.get("issueCreate") or {}
        issue = created.get("issue")
        if not created.get("success") or not issue:
            raise TicketTriggerError("Linear issueCreate did not succeed")
        return TicketRef(id=issue["id"], identifier=issue.get("identifier"), url=issue.get("url"))
