"""
test_schemas.py - Unit tests for brief models, status rules and reducers.
"""

from opportunity_brief.configuration import BriefConfiguration
from opportunity_brief.schemas import (
    SECTION_ORDER,
    Brief,
    SectionRecord,
    compute_overall_status,
    merge_dicts,
)


def test_merge_dicts_b_wins_on_conflict():
    assert merge_dicts({"summary": "failed"}, {"summary": "complete", "risks": "failed"}) == {
        "summary": "complete",
        "risks": "failed",
    }


def test_new_brief_has_every_section_pending():
    brief = Brief(id="p#o", project_id="p", opportunity_id="o")
    assert list(brief.sections) == list(SECTION_ORDER)
    assert all(r.status == "PENDING" for r in brief.sections.values())
    assert brief.status == "PENDING"
    assert brief.ticket_attempted is False


def test_overall_status_in_progress_wins():
    assert compute_overall_status(["COMPLETE", "FAILED", "IN_PROGRESS"]) == "IN_PROGRESS"


def test_overall_status_complete_only_when_all_complete():
    assert compute_overall_status(["COMPLETE"] * 7) == "COMPLETE"
    assert compute_overall_status(["COMPLETE"] * 6 + ["PENDING"]) == "PENDING"


def test_overall_status_failed_when_any_failed_and_none_running():
    assert compute_overall_status(["COMPLETE", "FAILED", "PENDING"]) == "FAILED"


def test_section_data_only_trusted_when_complete():
    brief = Brief(id="p#o", project_id="p", opportunity_id="o")
    brief.sections["summary"] = SectionRecord(status="FAILED", data={"stale": True})
    brief.sections["risks"] = SectionRecord(status="COMPLETE", data={"risks": []})
    assert brief.section_data("summary") is None
    assert brief.section_data("risks") == {"risks": []}


def test_unresolved_treats_failed_as_terminal():
    brief = Brief(id="p#o", project_id="p", opportunity_id="o")
    brief.sections["summary"] = SectionRecord(status="FAILED")
    brief.sections["risks"] = SectionRecord(status="IN_PROGRESS")
    assert brief.unresolved(["summary", "risks", "requirements"]) == ["risks", "requirements"]
    assert brief.in_progress_sections() == ["risks"]
    assert not brief.all_terminal()


def test_configuration_ignores_unknown_configurable_keys():
    cfg = BriefConfiguration.from_runnable_config(
        {"configurable": {"poll_interval_seconds": 0.5, "thread_id": "abc"}}
    )
    assert cfg.poll_interval_seconds == 0.5
    assert cfg.max_prerequisite_wait_seconds > 0


def test_configuration_reads_llm_endpoint_from_env(monkeypatch):
    monkeypatch.setenv("BRIEF_LLM_BASE_URL", "http://llm.internal/v1")
    assert BriefConfiguration().base_url == "http://llm.internal/v1"

    monkeypatch.delenv("BRIEF_LLM_BASE_URL")
    monkeypatch.delenv("OVH_API_BASE_URL", raising=False)
    assert BriefConfiguration().base_url.startswith("https://")
