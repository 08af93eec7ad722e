"""
Input fingerprints for section caching.

A section is regenerated only when the hash of its inputs changes. The hash is
a change detector, not a security token.
"""

from __future__ import annotations

import hashlib
import json
from typing import Iterable, Optional

from opportunity_brief.schemas import SCORING_PREREQUISITES, Brief


def sha256(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def build_section_input_hash(brief_id: str, section: str, source_fingerprint: str) -> str:
    return sha256(f"{brief_id}|{section}|{source_fingerprint}")


def prerequisite_digest(brief: Brief) -> str:
    """Digest of the composite section's inputs: each prerequisite's status and data."""
    snapshot = {
        name: {
            "status": brief.section(name).status,
            "data": brief.section(name).data,
        }
        for name in SCORING_PREREQUISITES
    }
    return sha256(json.dumps(snapshot, sort_keys=True, default=str))


def build_source_fingerprint(
    opportunity_id: str,
    text_keys: Iterable[str],
    prerequisites: Optional[str] = None,
) -> str:
    """
    Stable description of everything a section is generated from.

    text_keys are sorted so document listing order never changes the result.
    `prerequisites` is the prerequisite_digest and is only set for the
    composite section.
    """
    parts = [f"opp={opportunity_id}", "docs=" + ",".join(sorted(text_keys))]
    if prerequisites:
        parts.append(f"prereq={prerequisites}")
    return ";".join(parts)
