"""
test_hashing.py - Input hash determinism and invalidation.
"""

from opportunity_brief.hashing import (
    build_section_input_hash,
    build_source_fingerprint,
    prerequisite_digest,
)
from opportunity_brief.schemas import Brief, SectionRecord


def test_hash_is_deterministic_and_section_scoped():
    fp = build_source_fingerprint("opp-1", ["a.txt"])
    assert build_section_input_hash("b1", "summary", fp) == build_section_input_hash("b1", "summary", fp)
    assert build_section_input_hash("b1", "summary", fp) != build_section_input_hash("b1", "risks", fp)


def test_fingerprint_ignores_document_order():
    assert build_source_fingerprint("opp-1", ["b.txt", "a.txt"]) == build_source_fingerprint(
        "opp-1", ["a.txt", "b.txt"]
    )


def test_new_document_changes_fingerprint():
    assert build_source_fingerprint("opp-1", ["a.txt"]) != build_source_fingerprint(
        "opp-1", ["a.txt", "b.txt"]
    )


def test_prerequisite_digest_tracks_prerequisite_data_only():
    brief = Brief(id="p#o", project_id="p", opportunity_id="o")
    before = prerequisite_digest(brief)

    brief.sections["deadlines"] = SectionRecord(status="COMPLETE", data={"deadlines": []})
    assert prerequisite_digest(brief) == before

    brief.sections["risks"] = SectionRecord(status="COMPLETE", data={"risks": []})
    assert prerequisite_digest(brief) != before
