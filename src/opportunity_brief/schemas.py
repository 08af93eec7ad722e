from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Literal, Optional, get_args

from pydantic import BaseModel, Field
from typing_extensions import TypedDict


# ── Reducers ──────────────────────────────────────────────────────────────────

def merge_dicts(a: dict, b: dict) -> dict:
    """Reducer: shallow-merge two dicts (b wins on key conflicts).
    Parallel Send() section workers each write their own section key."""
    return {**a, **b}


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ── Sections & statuses ───────────────────────────────────────────────────────

SectionName = Literal[
    "summary",
    "deadlines",
    "contacts",
    "requirements",
    "risks",
    "pastPerformance",
    "scoring",
]
SECTION_ORDER: tuple[str, ...] = get_args(SectionName)

COMPOSITE_SECTION = "scoring"
# Static dependency map: the composite section reads these four.
SCORING_PREREQUISITES: tuple[str, ...] = (
    "summary",
    "requirements",
    "risks",
    "pastPerformance",
)
INDEPENDENT_SECTIONS: tuple[str, ...] = tuple(
    s for s in SECTION_ORDER if s != COMPOSITE_SECTION
)

SectionStatus = Literal["PENDING", "IN_PROGRESS", "COMPLETE", "FAILED"]
TERMINAL_STATUSES = frozenset({"COMPLETE", "FAILED"})

Recommendation = Literal["GO", "NO_GO", "NEEDS_REVIEW"]
Decision = Literal["GO", "CONDITIONAL_GO", "NO_GO"]
Severity = Literal["LOW", "MEDIUM", "HIGH", "CRITICAL"]
ContactRole = Literal[
    "CONTRACTING_OFFICER",
    "CONTRACT_SPECIALIST",
    "TECHNICAL_POC",
    "PROGRAM_MANAGER",
    "SMALL_BUSINESS_SPECIALIST",
    "PROCUREMENT_POC",
    "SUBCONTRACTING_POC",
    "GENERAL_INQUIRY",
    "OTHER",
]
RECOMMENDED_CONTACT_ROLES: tuple[str, ...] = (
    "CONTRACTING_OFFICER",
    "CONTRACT_SPECIALIST",
    "TECHNICAL_POC",
    "PROGRAM_MANAGER",
)


def is_terminal(status: Optional[str]) -> bool:
    return status in TERMINAL_STATUSES


def compute_overall_status(statuses: list[str]) -> str:
    """
    Derive the brief-level status from its section statuses.

    Any section in flight wins; otherwise the brief is COMPLETE only when every
    section is, FAILED when at least one section failed, and PENDING otherwise.
    """
    if any(s == "IN_PROGRESS" for s in statuses):
        return "IN_PROGRESS"
    if statuses and all(s == "COMPLETE" for s in statuses):
        return "COMPLETE"
    if any(s == "FAILED" for s in statuses):
        return "FAILED"
    return "PENDING"


# ── Persisted records ─────────────────────────────────────────────────────────

class SectionRecord(BaseModel):
    """One section slot on a brief. `data` is only meaningful when COMPLETE."""
    status: SectionStatus = "PENDING"
    input_hash: Optional[str] = None
    data: Optional[dict] = None
    error: Optional[str] = None
    updated_at: Optional[str] = None


def _empty_sections() -> dict[str, SectionRecord]:
    return {name: SectionRecord() for name in SECTION_ORDER}


class Brief(BaseModel):
    """The executive opportunity brief: one record per (project, opportunity)."""
    id: str
    project_id: str
    opportunity_id: str
    status: SectionStatus = "PENDING"
    sections: dict[str, SectionRecord] = Field(default_factory=_empty_sections)

    # Top-level decision fields, written only by the composite section
    composite_score: Optional[float] = None
    recommendation: Optional[Recommendation] = None
    decision: Optional[Decision] = None
    confidence: Optional[int] = None

    created_at: str = Field(default_factory=utc_now)
    updated_at: str = Field(default_factory=utc_now)

    # Completion side effect bookkeeping
    ticket_attempted: bool = False
    ticket_id: Optional[str] = None
    ticket_identifier: Optional[str] = None
    ticket_url: Optional[str] = None
    ticket_error: Optional[str] = None

    def section(self, name: str) -> SectionRecord:
        return self.sections.get(name) or SectionRecord()

    def section_data(self, name: str) -> Optional[dict]:
        record = self.section(name)
        return record.data if record.status == "COMPLETE" else None

    def unresolved(self, names: tuple[str, ...] | list[str]) -> list[str]:
        return [n for n in names if not is_terminal(self.section(n).status)]

    def in_progress_sections(self) -> list[str]:
        return [n for n in SECTION_ORDER if self.section(n).status == "IN_PROGRESS"]

    def all_terminal(self) -> bool:
        return not self.unresolved(SECTION_ORDER)


# ── Section payloads (structured LLM output) ──────────────────────────────────

class EvidenceRef(BaseModel):
    source: Optional[str] = None
    snippet: Optional[str] = None
    document_id: Optional[str] = None


class QuickSummary(BaseModel):
    """At-a-glance facts about the opportunity."""
    title: Optional[str] = None
    agency: Optional[str] = None
    office: Optional[str] = None
    solicitation_number: Optional[str] = None
    naics: Optional[str] = None
    contract_type: Literal[
        "FFP", "FIXED_PRICE", "T&M", "COST_PLUS", "IDIQ",
        "BPA", "GWAC", "SCHEDULE", "OTHER", "UNKNOWN",
    ] = "UNKNOWN"
    set_aside: Literal[
        "NONE", "SMALL_BUSINESS", "8A", "SDVOSB", "VOSB",
        "WOSB", "HUBZONE", "SDB", "OTHER", "UNKNOWN",
    ] = "UNKNOWN"
    place_of_performance: Optional[str] = None
    estimated_value_usd: Optional[float] = Field(default=None, ge=0)
    period_of_performance: Optional[str] = None
    summary: str = Field(description="Two to four sentence plain-language summary", min_length=10)
    evidence: list[EvidenceRef] = Field(default_factory=list)


class Deadline(BaseModel):
    type: Optional[str] = Field(default=None, description="e.g. PROPOSAL_DUE, QUESTIONS_DUE, SITE_VISIT")
    label: Optional[str] = None
    date_time_iso: Optional[str] = Field(default=None, description="ISO-8601 with offset when known")
    raw_text: Optional[str] = None
    timezone: Optional[str] = None
    notes: Optional[str] = None
    evidence: list[EvidenceRef] = Field(default_factory=list)


class DeadlinesSection(BaseModel):
    deadlines: list[Deadline] = Field(min_length=1)
    has_submission_deadline: bool = False
    submission_deadline_iso: Optional[str] = None
    warnings: list[str] = Field(default_factory=list)


class Contact(BaseModel):
    role: ContactRole = "OTHER"
    name: Optional[str] = None
    title: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    organization: Optional[str] = None
    notes: Optional[str] = None


class ContactsSection(BaseModel):
    contacts: list[Contact] = Field(default_factory=list)
    missing_recommended_roles: list[ContactRole] = Field(default_factory=list)


class RequirementItem(BaseModel):
    category: Optional[str] = None
    requirement: str = Field(min_length=5)
    must_have: bool = True


class SubmissionCompliance(BaseModel):
    format: list[str] = Field(default_factory=list)
    required_volumes: list[str] = Field(default_factory=list)
    attachments_and_forms: list[str] = Field(default_factory=list)


class RequirementsSection(BaseModel):
    overview: str = Field(min_length=10)
    requirements: list[RequirementItem] = Field(min_length=1)
    deliverables: list[str] = Field(default_factory=list)
    evaluation_factors: list[str] = Field(default_factory=list)
    submission_compliance: SubmissionCompliance = Field(default_factory=SubmissionCompliance)


class RiskFlag(BaseModel):
    severity: Severity
    flag: str = Field(min_length=5)
    why_it_matters: Optional[str] = None
    mitigation: Optional[str] = None
    impacts_score: bool = False


class IncumbentInfo(BaseModel):
    known_incumbent: bool = False
    incumbent_name: Optional[str] = None
    recompete: bool = False
    notes: Optional[str] = None


class RisksSection(BaseModel):
    risks: list[RiskFlag] = Field(default_factory=list)
    red_flags: list[RiskFlag] = Field(default_factory=list)
    incumbent_info: IncumbentInfo = Field(default_factory=IncumbentInfo)


class PastProjectMatch(BaseModel):
    project_name: str
    customer: Optional[str] = None
    relevance_score: int = Field(ge=0, le=100)
    rationale: Optional[str] = None


class PastPerformanceSection(BaseModel):
    top_matches: list[PastProjectMatch] = Field(default_factory=list, max_length=5)
    gaps: list[str] = Field(default_factory=list)
    narrative_summary: Optional[str] = None
    confidence_score: Optional[int] = Field(default=None, ge=0, le=100)


class ScoreCriterion(BaseModel):
    name: Literal[
        "TECHNICAL_FIT",
        "PAST_PERFORMANCE_RELEVANCE",
        "PRICING_POSITION",
        "STRATEGIC_ALIGNMENT",
        "INCUMBENT_RISK",
    ]
    score: int = Field(ge=1, le=5)
    rationale: Optional[str] = None
    gaps: list[str] = Field(default_factory=list)


class ConfidenceDriver(BaseModel):
    factor: str
    direction: Literal["UP", "DOWN"]


class ScoringSection(BaseModel):
    """Bid/no-bid scoring built from the other sections."""
    criteria: list[ScoreCriterion] = Field(default_factory=list)
    composite_score: Optional[float] = None
    recommendation: Optional[Recommendation] = None
    confidence: Optional[int] = Field(default=None, ge=0, le=100)
    summary_justification: Optional[str] = None
    decision: Optional[Decision] = None
    decision_rationale: Optional[str] = None
    blockers: list[str] = Field(default_factory=list)
    required_actions: list[str] = Field(default_factory=list)
    confidence_drivers: list[ConfidenceDriver] = Field(default_factory=list)


SECTION_MODELS: dict[str, type[BaseModel]] = {
    "summary": QuickSummary,
    "deadlines": DeadlinesSection,
    "contacts": ContactsSection,
    "requirements": RequirementsSection,
    "risks": RisksSection,
    "pastPerformance": PastPerformanceSection,
    "scoring": ScoringSection,
}


# ── Ticket reference ──────────────────────────────────────────────────────────

class TicketRef(BaseModel):
    id: str
    identifier: Optional[str] = None
    url: Optional[str] = None


# ── Graph state ───────────────────────────────────────────────────────────────

class BriefRunInput(TypedDict):
    """What the caller passes to start a generate-all run."""
    brief_id: str
    only_missing: bool


class BriefRunState(TypedDict, total=False):
    brief_id: str
    only_missing: bool

    sections_to_run: list[str]                          # independent sections fired this run
    run_composite: bool
    deadline: float                                     # loop.time() at which the wait budget ends

    # Each Send() worker writes {section: "complete" | "failed" | "still_running"}
    section_outcomes: Annotated[dict, merge_dicts]
    pending_prerequisites: list[str]
    composite_outcome: Literal["complete", "failed", "timed_out", "skipped"]

    brief: dict                                         # final snapshot (Brief.model_dump)


class SectionTaskState(TypedDict):
    """Send() payload for one section worker."""
    brief_id: str
    section: str
    deadline: float
