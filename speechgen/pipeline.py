"""End-to-end facade: page images in, scripts (plus translations and audio) out."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, Optional

from .clock import Clock
from .config import GeneratorConfig
from .errors import GenerationCancelled, GenerationError, PageSelectionError
from .export import export_markdown, sections_from_results
from .orchestrator import BatchOrchestrator
from .pages import format_page_range, load_pages, select_pages
from .services.base import ScriptService, SpeechSynthesizer, Translator
from .services.script import OpenAIScriptService
from .services.speech import OpenAISpeechService
from .services.translate import OpenAITranslator
from .types import BatchSnapshot
from .utils.files import atomic_write, ensure_dir
from .utils.run_logger import RunLogger

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GenerationReport:
    """What a pipeline run produced."""

    run_id: str
    snapshot: BatchSnapshot
    translations: Dict[int, str] = field(default_factory=dict)
    audio_paths: Dict[int, str] = field(default_factory=dict)
    followup_errors: Dict[int, str] = field(default_factory=dict)
    markdown_path: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return not self.snapshot.page_errors and not self.followup_errors


class SpeechScriptGenerator:
    """High-level facade wiring the page loader, orchestrator and follow-up services."""

    def __init__(
        self,
        config: GeneratorConfig | None = None,
        *,
        script_service: ScriptService | None = None,
        translator: Translator | None = None,
        speech: SpeechSynthesizer | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.config = config or GeneratorConfig.from_env()
        self.config.validate()
        self.logger = RunLogger(base_dir=self.config.runs_dir)

        use_mock = self.config.enable_mock_generation
        self.script_service = script_service or OpenAIScriptService(
            api_key=self.config.api_key,
            base_url=self.config.base_url,
            model=self.config.model,
            use_mock=use_mock,
            timeout=self.config.request_timeout_sec,
        )
        self.translator = translator or OpenAITranslator(
            api_key=self.config.api_key,
            base_url=self.config.base_url,
            model=self.config.model,
            use_mock=use_mock,
            timeout=self.config.request_timeout_sec,
        )
        self.speech = speech or OpenAISpeechService(
            api_key=self.config.api_key,
            base_url=self.config.base_url,
            model=self.config.tts_model,
            voice=self.config.tts_voice,
            use_mock=use_mock,
            timeout=self.config.request_timeout_sec,
        )
        self.orchestrator = BatchOrchestrator(
            self.script_service,
            options=self.config.options(),
            max_retries=self.config.max_retries,
            retry_base_delay=self.config.retry_base_delay_sec,
            pacing_delay=self.config.pacing_delay_sec,
            clock=clock,
        )

    @property
    def is_generating(self) -> bool:
        """True while the page batch itself is running (not the follow-ups)."""
        return self.orchestrator.is_running

    def cancel(self) -> None:
        """Stop the batch in progress, if any."""
        self.orchestrator.cancel()

    def run(
        self,
        *,
        image_paths: Iterable[str],
        topic: str,
        page_selection: str | None = None,
        translate_to: str | None = None,
        narrate: bool = False,
    ) -> GenerationReport:
        """Synchronous wrapper around :meth:`generate`."""
        return asyncio.run(
            self.generate(
                image_paths=image_paths,
                topic=topic,
                page_selection=page_selection,
                translate_to=translate_to,
                narrate=narrate,
            )
        )

    async def generate(
        self,
        *,
        image_paths: Iterable[str],
        topic: str,
        page_selection: str | None = None,
        translate_to: str | None = None,
        narrate: bool = False,
    ) -> GenerationReport:
        """Generate scripts for the selected pages and run the optional follow-ups."""
        run_id = self._new_run_id()
        pages = select_pages(load_pages(image_paths), page_selection)
        if not pages:
            raise PageSelectionError("No pages selected for generation.")
        logger.info("Run %s: generating pages %s", run_id, format_page_range(page.number for page in pages))

        self.orchestrator.topic = topic
        output_root = Path(self.config.output_dir) / run_id
        unsubscribe = self.orchestrator.subscribe(self._page_recorder(run_id))
        try:
            await self.orchestrator.generate_all(pages, clear_results=True)
        except GenerationCancelled:
            partial = self.orchestrator.snapshot()
            extra: Dict[str, object] = {"topic": topic}
            if partial.results:
                markdown = export_markdown(output_root / "scripts.md", sections_from_results(partial.results))
                extra["markdown_path"] = str(markdown)
            self.logger.log_report(run_id, partial, extra=extra)
            logger.warning("Run %s cancelled; %d finished script(s) kept", run_id, len(partial.results))
            raise
        finally:
            unsubscribe()

        snapshot = self.orchestrator.snapshot()
        report = GenerationReport(run_id=run_id, snapshot=snapshot)
        ensure_dir(output_root)

        for index in sorted(snapshot.results):
            script = snapshot.results[index]
            record: Dict[str, object] = {"script": script}
            try:
                if translate_to:
                    translation = await self.translator.translate(script, translate_to, context=topic)
                    report.translations[index] = translation.content
                    record["translation"] = translation.content
                if narrate:
                    audio = await self.speech.synthesize(report.translations.get(index, script))
                    audio_path = atomic_write(output_root / f"page-{index + 1:03d}.mp3", audio)
                    report.audio_paths[index] = str(audio_path)
                    record["audio_path"] = str(audio_path)
            except (GenerationError, ValueError) as exc:
                logger.warning("Follow-up for page %d failed: %s", index + 1, exc)
                report.followup_errors[index] = str(exc)
                record["followup_error"] = str(exc)
            self.logger.log_page(run_id, index, record)

        if snapshot.results:
            markdown = export_markdown(output_root / "scripts.md", sections_from_results(snapshot.results))
            report.markdown_path = str(markdown)
            if report.translations:
                export_markdown(output_root / f"scripts.{translate_to}.md", sections_from_results(report.translations))

        self.logger.log_report(
            run_id,
            snapshot,
            extra={
                "topic": topic,
                "translated_pages": sorted(report.translations),
                "narrated_pages": sorted(report.audio_paths),
                "followup_errors": {str(index + 1): reason for index, reason in report.followup_errors.items()},
            },
        )
        return report

    def _page_recorder(self, run_id: str):
        """Return a snapshot listener that persists each script as soon as it exists."""
        recorded: Dict[int, str] = {}

        def _record(snapshot: BatchSnapshot) -> None:
            for index, script in snapshot.results.items():
                if recorded.get(index) != script:
                    self.logger.log_page(run_id, index, {"script": script})
                    recorded[index] = script

        return _record

    @staticmethod
    def _new_run_id() -> str:
        """Return a simple unique run identifier."""
        return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
