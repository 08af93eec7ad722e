import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv
from langchain_core.runnables import RunnableConfig

load_dotenv()

DEFAULT_LLM_BASE_URL = "https://oai.endpoints.kepler.ai.cloud.ovh.net/v1"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw else default


@dataclass(kw_only=True)
class BriefConfiguration:
    """Runtime configuration injected via RunnableConfig['configurable'] or the environment."""

    model_name: str = field(
        default_factory=lambda: os.getenv("BRIEF_MODEL", "Mistral-Nemo-Instruct-2407")
    )
    base_url: str = field(
        default_factory=lambda: os.getenv("BRIEF_LLM_BASE_URL")
        or os.getenv("OVH_API_BASE_URL", DEFAULT_LLM_BASE_URL)
    )
    temperature: float = 0.1
    max_solicitation_chars: int = field(
        default_factory=lambda: _env_int("BRIEF_MAX_SOLICITATION_CHARS", 45_000)
    )
    # Composite wait: re-read interval and hard ceiling for the prerequisite poll.
    poll_interval_seconds: float = field(
        default_factory=lambda: _env_float("BRIEF_POLL_INTERVAL_SECONDS", 2.0)
    )
    max_prerequisite_wait_seconds: float = field(
        default_factory=lambda: _env_float("BRIEF_MAX_PREREQUISITE_WAIT_SECONDS", 120.0)
    )
    status_poll_interval_seconds: float = field(
        default_factory=lambda: _env_float("BRIEF_STATUS_POLL_INTERVAL_SECONDS", 2.0)
    )
    ticket_priority: int = 3

    @classmethod
    def from_runnable_config(
        cls, config: Optional[RunnableConfig] = None
    ) -> "BriefConfiguration":
        configurable = (config or {}).get("configurable", {})
        return cls(
            **{k: v for k, v in configurable.items() if k in cls.__dataclass_fields__}
        )
