"""
gateway.py - Section Generator Gateway.

One call per section: load the solicitation text, ask the LLM for the
section's structured model, normalise it and return it as a plain dict.
The composite (scoring) section additionally receives the prerequisite
sections' data; a prerequisite that FAILED is passed as UNAVAILABLE.

Any exception is wrapped in SectionGenerationError so the state machine can
record it uniformly.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Optional, Protocol

from langchain_openai import ChatOpenAI

from opportunity_brief.configuration import BriefConfiguration
from opportunity_brief.errors import SectionGenerationError
from opportunity_brief.generators.normalize import normalize_section
from opportunity_brief.prompts import (
    SCORING_USER_PROMPT,
    SECTION_PROMPTS,
    SECTION_USER_PROMPT,
)
from opportunity_brief.schemas import COMPOSITE_SECTION, SECTION_MODELS, Brief
from opportunity_brief.sources import SolicitationSource, truncate_text

logger = logging.getLogger(__name__)


class SectionGateway(Protocol):
    async def generate(self, section: str, brief: Brief) -> dict: ...


def _ovh_llm(base_url: str, **kwargs) -> ChatOpenAI:
    return ChatOpenAI(
        api_key=os.getenv("OVH_KEY") or os.getenv("OVH_AI_ENDPOINTS_ACCESS_TOKEN"),
        base_url=base_url,
        **kwargs,
    )


def _section_block(brief: Brief, name: str) -> str:
    data = brief.section_data(name)
    if data is None:
        return "UNAVAILABLE"
    return json.dumps(data, indent=2, default=str)


def build_messages(section: str, brief: Brief, solicitation_text: str) -> list[dict]:
    system_prompt, task = SECTION_PROMPTS[section]
    if section == COMPOSITE_SECTION:
        user_prompt = SCORING_USER_PROMPT.format(
            task=task,
            summary=_section_block(brief, "summary"),
            requirements=_section_block(brief, "requirements"),
            risks=_section_block(brief, "risks"),
            past_performance=_section_block(brief, "pastPerformance"),
            solicitation_text=solicitation_text,
        )
    else:
        user_prompt = SECTION_USER_PROMPT.format(task=task, solicitation_text=solicitation_text)
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]


class LLMSectionGateway:
    """Generates sections with ChatOpenAI structured output."""

    def __init__(
        self,
        sources: SolicitationSource,
        config: Optional[BriefConfiguration] = None,
    ):
        self.sources = sources
        self.config = config or BriefConfiguration()

    async def generate(self, section: str, brief: Brief) -> dict:
        if section not in SECTION_MODELS:
            raise SectionGenerationError(section, "unknown section")
        try:
            text = await self.sources.load_text(brief)
            text = truncate_text(text, self.config.max_solicitation_chars)

            llm = _ovh_llm(
                self.config.base_url,
                model=self.config.model_name,
                temperature=self.config.temperature,
            ).with_structured_output(SECTION_MODELS[section])

            result = await llm.ainvoke(build_messages(section, brief, text))
            if result is None:
                raise ValueError("model returned no structured output")
            result = normalize_section(section, result)
            return result.model_dump(mode="json")
        except SectionGenerationError:
            raise
        except Exception as exc:
            logger.warning("Generator for %s on brief %s failed: %s", section, brief.id, exc)
            raise SectionGenerationError(section, f"{type(exc).__name__}: {exc}") from exc
