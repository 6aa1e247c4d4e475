"""Command-line entry point for the speech script generator."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path

from speechgen.config import GeneratorConfig
from speechgen.cost import to_krw
from speechgen.errors import GenerationCancelled, SpeechGenError
from speechgen.logger import setup_logging
from speechgen.pipeline import GenerationReport, SpeechScriptGenerator
from speechgen.progress import ProgressPresenter
from speechgen.services.translate import LANGUAGE_NAMES
from speechgen.types import BatchSnapshot, LengthOption, ToneOption

logger = logging.getLogger("speechgen.cli")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 130


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(description="Generate TTS-ready scripts from product page images.")
    parser.add_argument("image_paths", nargs="+", help="Page images in reading order.")
    parser.add_argument("--topic", default="", help="Product name or topic of the document.")
    parser.add_argument("--pages", default=None, help='1-based page selection, e.g. "1-3,6".')
    parser.add_argument("--length", choices=[o.value for o in LengthOption], default=None)
    parser.add_argument("--tone", choices=[o.value for o in ToneOption], default=None)
    parser.add_argument("--delivery", default=None, help="Free-form delivery style hint.")
    parser.add_argument("--translate", choices=sorted(LANGUAGE_NAMES), default=None)
    parser.add_argument("--narrate", action="store_true", help="Synthesize an mp3 per page.")
    parser.add_argument("--output-dir", default=None, help="Where scripts and audio are written.")
    parser.add_argument("--log-file", type=Path, default=None)
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> GeneratorConfig:
    config = GeneratorConfig.from_env()
    if args.length:
        config.length = args.length
    if args.tone:
        config.tone = args.tone
    if args.delivery:
        config.delivery = args.delivery
    if args.output_dir:
        config.output_dir = args.output_dir
    return config


def _progress_listener(presenter: ProgressPresenter):
    """Log the eased batch percentage whenever it moves."""
    last = {"value": -1}

    def _on_snapshot(snapshot: BatchSnapshot) -> None:
        value = presenter.tick_snapshot(snapshot)
        if value != last["value"]:
            last["value"] = value
            logger.info("Progress %d%% (%d/%d pages)", value, snapshot.completed_count, snapshot.total_count)

    return _on_snapshot


async def _run(generator: SpeechScriptGenerator, args: argparse.Namespace) -> GenerationReport:
    loop = asyncio.get_running_loop()
    task = asyncio.current_task()

    def _on_interrupt() -> None:
        # the batch stops cooperatively; follow-up work is cancelled outright
        if generator.is_generating:
            generator.cancel()
        elif task is not None:
            task.cancel()

    unsubscribe = generator.orchestrator.subscribe(_progress_listener(ProgressPresenter()))
    handler_installed = False
    # add_signal_handler is unavailable on Windows event loops
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, _on_interrupt)
        handler_installed = True
    try:
        return await generator.generate(
            image_paths=args.image_paths,
            topic=args.topic,
            page_selection=args.pages,
            translate_to=args.translate,
            narrate=args.narrate,
        )
    finally:
        unsubscribe()
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)


def print_summary(report: GenerationReport) -> None:
    snapshot = report.snapshot
    print(f"Run {report.run_id}: {len(snapshot.results)}/{snapshot.total_count} page(s) generated.")
    for error in snapshot.page_errors:
        print(f"  page {error.page_index + 1}: {error.reason}")
    for index, reason in sorted(report.followup_errors.items()):
        print(f"  page {index + 1} follow-up: {reason}")
    if snapshot.error_message:
        print(f"Summary: {snapshot.error_message}")
    if snapshot.usage_summary:
        usage = snapshot.usage_summary
        print(f"Tokens: prompt={usage.prompt_tokens} completion={usage.completion_tokens} total={usage.total_tokens}")
    if snapshot.cost_summary:
        total = snapshot.cost_summary.total_cost
        print(f"Cost: ${total:.4f} (~{to_krw(total)} KRW)")
    if report.markdown_path:
        print(f"Scripts written to {report.markdown_path}")


def main(argv: list[str] | None = None) -> int:
    """Entry point used by ``python run.py``."""
    args = parse_args(argv if argv is not None else sys.argv[1:])
    setup_logging(level=logging.DEBUG if args.verbose else logging.INFO, log_file=args.log_file)

    try:
        generator = SpeechScriptGenerator(build_config(args))
        report = asyncio.run(_run(generator, args))
    except (GenerationCancelled, asyncio.CancelledError):
        print("Generation cancelled.")
        return EXIT_CANCELLED
    except (SpeechGenError, FileNotFoundError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FAILED

    print_summary(report)
    return EXIT_OK if report.succeeded else EXIT_FAILED


if __name__ == "__main__":
    raise SystemExit(main())
