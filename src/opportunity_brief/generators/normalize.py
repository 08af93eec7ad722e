"""
Post-processing applied to structured LLM output before it is stored.

Each function takes the validated section model and returns a corrected copy;
sections without a normalizer are stored as generated.
"""

from __future__ import annotations

from typing import Callable

from pydantic import BaseModel

from opportunity_brief.schemas import (
    RECOMMENDED_CONTACT_ROLES,
    ContactsSection,
    DeadlinesSection,
    RisksSection,
    ScoringSection,
)


def normalize_deadlines(section: DeadlinesSection) -> DeadlinesSection:
    if not section.submission_deadline_iso:
        proposal_due = next(
            (d for d in section.deadlines if d.type == "PROPOSAL_DUE" and d.date_time_iso),
            None,
        )
        if proposal_due is not None:
            section.submission_deadline_iso = proposal_due.date_time_iso
    section.has_submission_deadline = section.has_submission_deadline or bool(
        section.submission_deadline_iso
    )
    return section


def normalize_contacts(section: ContactsSection) -> ContactsSection:
    if not section.missing_recommended_roles:
        present = {c.role for c in section.contacts}
        section.missing_recommended_roles = [
            role for role in RECOMMENDED_CONTACT_ROLES if role not in present
        ]
    return section


def normalize_risks(section: RisksSection) -> RisksSection:
    # HIGH/CRITICAL always count against the score
    for risk in [*section.risks, *section.red_flags]:
        if risk.severity in ("HIGH", "CRITICAL"):
            risk.impacts_score = True
    return section


def decision_from_recommendation(recommendation: str | None) -> str:
    if recommendation == "NO_GO":
        return "NO_GO"
    if recommendation == "GO":
        return "GO"
    return "CONDITIONAL_GO"


def normalize_scoring(section: ScoringSection) -> ScoringSection:
    if section.criteria:
        scores = [c.score for c in section.criteria]
        section.composite_score = round(sum(scores) / len(scores), 1)
    if section.decision is None:
        section.decision = decision_from_recommendation(section.recommendation)
    return section


NORMALIZERS: dict[str, Callable[[BaseModel], BaseModel]] = {
    "deadlines": normalize_deadlines,
    "contacts": normalize_contacts,
    "risks": normalize_risks,
    "scoring": normalize_scoring,
}


def normalize_section(section: str, result: BaseModel) -> BaseModel:
    fn = NORMALIZERS.get(section)
    return fn(result) if fn else result
