from opportunity_brief.generators.gateway import (
    LLMSectionGateway,
    SectionGateway,
    build_messages,
)
from opportunity_brief.generators.normalize import normalize_section

__all__ = [
    "LLMSectionGateway",
    "SectionGateway",
    "build_messages",
    "normalize_section",
]
