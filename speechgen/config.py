"""Configuration container for the speech script generator."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import ClassVar

from .errors import ConfigError
from .types import GenerationOptions, LengthOption, ToneOption

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TTS_MODEL = "tts-1"
DEFAULT_TTS_VOICE = "nova"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(slots=True)
class GeneratorConfig:
    """Static configuration handed to the pipeline and its services.

    The caller owns this object; nothing in the package reads credentials from
    ambient state once the config has been built.
    """

    env_prefix: ClassVar[str] = "SPEECHGEN_"

    api_key: str | None = None
    base_url: str | None = None
    model: str = DEFAULT_MODEL
    tts_model: str = DEFAULT_TTS_MODEL
    tts_voice: str = DEFAULT_TTS_VOICE
    enable_mock_generation: bool = True
    runs_dir: str = "runs"
    output_dir: str = "outputs"
    pacing_delay_sec: float = 3.0
    max_retries: int = 2
    retry_base_delay_sec: float = 1.0
    request_timeout_sec: float = 60.0
    length: str = LengthOption.MEDIUM.value
    tone: str = ToneOption.BASIC.value
    delivery: str = "conversational"

    @classmethod
    def from_env(cls) -> "GeneratorConfig":
        """Create a config object populated from environment variables."""
        prefix = cls.env_prefix
        return cls(
            api_key=os.getenv("OPENAI_API_KEY"),
            base_url=os.getenv("OPENAI_BASE_URL") or None,
            model=os.getenv(f"{prefix}MODEL", DEFAULT_MODEL),
            tts_model=os.getenv(f"{prefix}TTS_MODEL", DEFAULT_TTS_MODEL),
            tts_voice=os.getenv(f"{prefix}TTS_VOICE", DEFAULT_TTS_VOICE),
            enable_mock_generation=os.getenv(f"{prefix}ENABLE_MOCKS", "true").lower() == "true",
            runs_dir=os.getenv(f"{prefix}RUNS_DIR", "runs"),
            output_dir=os.getenv(f"{prefix}OUTPUT_DIR", "outputs"),
            pacing_delay_sec=_env_float(f"{prefix}PACING_DELAY", 3.0),
            max_retries=int(_env_float(f"{prefix}MAX_RETRIES", 2)),
            retry_base_delay_sec=_env_float(f"{prefix}RETRY_BASE_DELAY", 1.0),
            request_timeout_sec=_env_float(f"{prefix}REQUEST_TIMEOUT", 60.0),
        )

    def options(self) -> GenerationOptions:
        """Return validated style options for the generation service."""
        try:
            length = LengthOption(self.length)
            tone = ToneOption(self.tone)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc
        return GenerationOptions(length=length, tone=tone, delivery=self.delivery)

    def validate(self) -> None:
        """Raise ``ConfigError`` when the settings cannot drive a real run."""
        if not self.enable_mock_generation and not self.api_key:
            raise ConfigError("OPENAI_API_KEY is missing; set it or enable mock generation.")
        if self.max_retries < 0:
            raise ConfigError("max_retries must be >= 0")
        if self.pacing_delay_sec < 0 or self.retry_base_delay_sec < 0:
            raise ConfigError("delays must be >= 0")
        self.options()
