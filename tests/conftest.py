"""
conftest.py - Shared pytest fixtures for the opportunity brief tests.

No LLM, Supabase or Linear calls: the gateway, the solicitation source and the
ticket action are in-memory fakes.
"""

import asyncio

import pytest
from langgraph.store.memory import InMemoryStore

from opportunity_brief.configuration import BriefConfiguration
from opportunity_brief.errors import TicketTriggerError
from opportunity_brief.schemas import TicketRef
from opportunity_brief.section_runner import SectionRunner
from opportunity_brief.service import BriefService
from opportunity_brief.sources import StaticSolicitationSource
from opportunity_brief.store import SectionStore

PROJECT_ID = "proj-1"
OPPORTUNITY_ID = "opp-1"

SOLICITATION = (
    "The Department of Energy seeks a contractor to modernise its grants "
    "management platform. Proposals are due 2026-11-20T17:00:00-05:00."
)

SECTION_RESULTS = {
    "summary": {"title": "Grants Platform Modernisation", "agency": "DOE", "summary": "Modernise the grants platform."},
    "deadlines": {"deadlines": [{"type": "PROPOSAL_DUE", "date_time_iso": "2026-11-20T17:00:00-05:00"}],
                  "has_submission_deadline": True,
                  "submission_deadline_iso": "2026-11-20T17:00:00-05:00"},
    "contacts": {"contacts": [], "missing_recommended_roles": ["CONTRACTING_OFFICER"]},
    "requirements": {"overview": "Cloud migration and support.", "requirements": [{"requirement": "FedRAMP Moderate"}]},
    "risks": {"risks": [], "red_flags": [{"severity": "HIGH", "flag": "Incumbent advantage"}]},
    "pastPerformance": {"top_matches": [], "gaps": ["No DOE work"]},
    "scoring": {"criteria": [], "composite_score": 4.2, "recommendation": "GO",
                "decision": "GO", "confidence": 80},
}


class FakeGateway:
    """Scripted section generator. Records every call in order."""

    def __init__(self, failures=()):
        self.calls: list[str] = []
        self.failures = set(failures)
        self.results = {k: dict(v) for k, v in SECTION_RESULTS.items()}
        self.gates: dict[str, asyncio.Event] = {}
        self.seen_briefs: dict[str, object] = {}

    def hold(self, section: str) -> asyncio.Event:
        """Block `section` until the returned event is set."""
        gate = asyncio.Event()
        self.gates[section] = gate
        return gate

    async def generate(self, section, brief):
        self.calls.append(section)
        self.seen_briefs[section] = brief
        gate = self.gates.get(section)
        if gate is not None:
            await gate.wait()
        if section in self.failures:
            raise RuntimeError(f"{section} generator exploded")
        return dict(self.results[section])


class FakeTicketAction:
    def __init__(self, fail: bool = False):
        self.calls: list[str] = []
        self.fail = fail

    async def create_ticket(self, brief):
        self.calls.append(brief.id)
        if self.fail:
            raise TicketTriggerError("Linear is down")
        return TicketRef(id="lin_1", identifier="RFP-1", url="https://linear.app/acme/issue/RFP-1")


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def section_store(store):
    return SectionStore(store)


@pytest.fixture
def sources():
    return StaticSolicitationSource({OPPORTUNITY_ID: {"rfp.txt": SOLICITATION}})


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def ticket_action():
    return FakeTicketAction()


@pytest.fixture
def config():
    return BriefConfiguration(
        model_name="test-model",
        poll_interval_seconds=0.01,
        max_prerequisite_wait_seconds=0.3,
        status_poll_interval_seconds=0.01,
    )


@pytest.fixture
def runner(section_store, gateway, sources):
    return SectionRunner(section_store, gateway, sources)


@pytest.fixture
def service(store, sources, gateway, ticket_action, config):
    return BriefService(
        store=store,
        sources=sources,
        gateway=gateway,
        ticket_action=ticket_action,
        config=config,
    )
