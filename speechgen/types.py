"""Core data models shared by the orchestrator, services and pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple, Union


@dataclass(frozen=True, slots=True)
class PageDescriptor:
    """One rendered document page submitted to generation."""

    index: int
    image_data: str
    source_path: Optional[str] = None

    def __post_init__(self) -> None:
        if self.index < 0:
            raise ValueError(f"page index must be non-negative, got {self.index}")

    @property
    def number(self) -> int:
        """1-based page number used in user-facing text."""
        return self.index + 1


@dataclass(frozen=True, slots=True)
class TokenUsage:
    """Token counts reported for one or more model calls."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


@dataclass(frozen=True, slots=True)
class CostBreakdown:
    """Currency amounts (USD) derived from token usage."""

    input_cost: float = 0.0
    output_cost: float = 0.0
    total_cost: float = 0.0

    def __add__(self, other: "CostBreakdown") -> "CostBreakdown":
        return CostBreakdown(
            input_cost=self.input_cost + other.input_cost,
            output_cost=self.output_cost + other.output_cost,
            total_cost=self.total_cost + other.total_cost,
        )


class LengthOption(str, Enum):
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


class ToneOption(str, Enum):
    BASIC = "basic"
    PERSUASIVE = "persuasive"
    EXPLANATORY = "explanatory"
    BULLET = "bullet"


@dataclass(frozen=True, slots=True)
class GenerationOptions:
    """Style options forwarded to the generation service."""

    length: LengthOption = LengthOption.MEDIUM
    tone: ToneOption = ToneOption.BASIC
    delivery: str = "conversational"


@dataclass(frozen=True, slots=True)
class PageScript:
    """Successful service response for a single page."""

    page_index: int
    content: str
    usage: Optional[TokenUsage] = None
    cost: Optional[CostBreakdown] = None


@dataclass(frozen=True, slots=True)
class PageSuccess:
    page_index: int
    content: str
    usage: Optional[TokenUsage] = None
    cost: Optional[CostBreakdown] = None


@dataclass(frozen=True, slots=True)
class PageFailure:
    page_index: int
    reason: str
    is_rate_limited: bool = False
    is_transient_network: bool = False


GenerationOutcome = Union[PageSuccess, PageFailure]


@dataclass(frozen=True, slots=True)
class PageError:
    """Terminal failure recorded for one page within a run."""

    page_index: int
    reason: str


class RunStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    CANCELLED = "cancelled"
    FINISHED = "finished"


@dataclass(frozen=True, slots=True)
class BatchSnapshot:
    """Read-only copy of the orchestrator state handed to observers."""

    results: Dict[int, str] = field(default_factory=dict)
    page_errors: Tuple[PageError, ...] = ()
    completed_count: int = 0
    total_count: int = 0
    usage_summary: Optional[TokenUsage] = None
    cost_summary: Optional[CostBreakdown] = None
    error_message: Optional[str] = None
    status: RunStatus = RunStatus.IDLE
    loading_page: Optional[int] = None

    @property
    def is_running(self) -> bool:
        return self.status is RunStatus.RUNNING

    @property
    def failed_pages(self) -> list[int]:
        return [error.page_index for error in self.page_errors]
