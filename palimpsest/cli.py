"""Command line interface for the Palimpsest book translator."""

from __future__ import annotations

import argparse
import pathlib
import re
import sys
import threading
from typing import Iterable, Optional

from .configuration import get_settings
from .errors import (
    AbortRequested,
    NonInteractiveAbort,
    PalimpsestError,
    TranslationProviderConfigurationError,
)
from .languages import LANGUAGES, language_name, resolve_language, same_language
from .providers import TranslationProvider, build_provider, requires_settings
from .structures import LanguagePairStatus, SessionSnapshot, SessionState
from .translator import TranslationSession, TranslationSummary, validate_paths

POLL_INTERVAL = 0.2
PREVIEW_WIDTH = 60


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="palimpsest",
        description=(
            "Translate the paragraphs and title of an EPUB book while keeping its markup."
        ),
    )
    parser.add_argument(
        "input_file",
        nargs="?",
        help="Path to the .epub book to translate.",
    )
    parser.add_argument(
        "-t",
        "--target-language",
        help="Destination language (code such as 'fr' or 'zh-Hans', or English name).",
    )
    parser.add_argument(
        "-s",
        "--source-language",
        help="Language of the book (default: PALIMPSEST_SOURCE_LANGUAGE or 'en').",
    )
    parser.add_argument(
        "-o",
        "--output",
        help="Output file path. Defaults to appending the target language code.",
    )
    parser.add_argument(
        "-p",
        "--provider",
        help="Translation provider identifier: openai, legacy-openai or echo.",
    )
    parser.add_argument(
        "-m",
        "--model",
        help="Provider-specific model or deployment identifier.",
    )
    parser.add_argument(
        "-b",
        "--batch",
        action="store_true",
        help="Send paragraphs in runs of 20 (fewer, larger requests for LLM providers).",
    )
    parser.add_argument(
        "--preview",
        choices=["off", "source", "target"],
        default="off",
        help="Show the paragraph being translated or the latest translation.",
    )
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Allow overwriting the output file if it already exists.",
    )
    parser.add_argument(
        "--non-interactive",
        action="store_true",
        help="Disable prompts; an interrupt stops the run instead of pausing it.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show detailed progress information.",
    )
    parser.add_argument(
        "--debug-provider",
        action="store_true",
        help="Log complete provider requests and responses for troubleshooting.",
    )
    parser.add_argument(
        "--list-languages",
        action="store_true",
        help="Print the selectable languages and exit.",
    )
    return parser


def sanitise_language_for_filename(language: str) -> str:
    """Generate a filesystem-friendly suffix from a language descriptor."""

    collapsed = re.sub(r"\s+", "-", language.strip())
    ascii_only = collapsed.encode("ascii", "ignore").decode("ascii")
    cleaned = re.sub(r"[^A-Za-z0-9\-]+", "", ascii_only)
    return cleaned or "translated"


def derive_output_path(input_path: pathlib.Path, language: str) -> pathlib.Path:
    addition = sanitise_language_for_filename(language)
    return input_path.with_name(f"{input_path.stem}_{addition}{input_path.suffix}")


def describe_unavailable(
    status: LanguagePairStatus,
    *,
    provider: TranslationProvider,
    source_language: str,
    target_language: str,
) -> str:
    """Explain why translation cannot start for this language pair."""

    source = language_name(source_language)
    target = language_name(target_language)
    if status is LanguagePairStatus.UNSUPPORTED:
        if same_language(source_language, target_language):
            return "Source and target languages are the same — choose a different target."
        return f"The {provider.name} provider cannot translate from {source} to {target}."
    return (
        f"Could not confirm that the {provider.name} provider supports "
        f"{source} to {target}."
    )


class SessionWorker(threading.Thread):
    """Runs :meth:`TranslationSession.translate` off the main thread."""

    def __init__(self, session: TranslationSession, pair_status: LanguagePairStatus):
        super().__init__(name="palimpsest-worker", daemon=True)
        self.session = session
        self.pair_status = pair_status
        self.failure: Optional[Exception] = None

    def run(self) -> None:
        try:
            self.session.translate(self.pair_status)
        except Exception as exc:
            self.failure = exc

    def raise_failure(self) -> None:
        if self.failure is not None:
            raise self.failure


def format_progress(snapshot: SessionSnapshot, preview: str) -> str:
    progress = snapshot.progress
    line = f"  {progress.completed}/{progress.total}"
    eta = progress.eta()
    if eta:
        line += f"  ETA {eta}"
    text = None
    if preview == "source":
        text = snapshot.current_source
    elif preview == "target":
        text = snapshot.latest_result
    if text:
        flattened = " ".join(text.split())
        if len(flattened) > PREVIEW_WIDTH:
            flattened = flattened[: PREVIEW_WIDTH - 1] + "…"
        line += f"  | {flattened}"
    return line


def _watch(session: TranslationSession, worker: SessionWorker, preview: str) -> None:
    last_line = ""
    while worker.is_alive():
        line = format_progress(session.snapshot(), preview)
        if line != last_line:
            print("\r" + line.ljust(len(last_line)), end="", flush=True)
            last_line = line
        worker.join(POLL_INTERVAL)
    final = format_progress(session.snapshot(), "off")
    print("\r" + final.ljust(len(last_line)), flush=True)


def _ask_resume(session: TranslationSession) -> bool:
    progress = session.progress
    prompt = (
        f"Translation paused at {progress.completed}/{progress.total}. "
        "Resume or abort?"
    )
    while True:
        response = input(f"{prompt} ").strip().lower()
        if response in {"resume", "r"}:
            return True
        if response in {"abort", "a"}:
            return False
        print("Please respond with Resume or Abort (r/a).")


def run_session(
    session: TranslationSession,
    pair_status: LanguagePairStatus,
    *,
    interactive: bool,
    preview: str,
) -> None:
    """Translate in a worker thread while the main thread shows progress.

    An interrupt pauses the session at the next paragraph boundary.
    """

    while True:
        worker = SessionWorker(session, pair_status)
        worker.start()
        try:
            _watch(session, worker, preview)
        except KeyboardInterrupt:
            print("\nPausing after the current paragraph...", flush=True)
            session.request_pause()
            worker.join()
        worker.raise_failure()

        if session.state is not SessionState.PAUSED:
            return
        if not interactive:
            session.abort()
            raise NonInteractiveAbort(
                "Translation interrupted in non-interactive mode. Stopping safely."
            )
        if not _ask_resume(session):
            session.abort()
            raise AbortRequested("Abort requested by user.")


def execute_translation(
    *,
    input_file: str,
    output_file: str | None,
    target_language: str,
    source_language: str,
    provider: str | None,
    model: str | None,
    batch: bool,
    preview: str,
    force_overwrite: bool,
    non_interactive: bool,
    verbose: bool,
    provider_debug: bool,
    settings: object = None,
) -> tuple[int, TranslationSummary | None, str | None]:
    """Execute a translation run and return the exit code, summary, and message."""

    source_code = resolve_language(source_language)
    target_code = resolve_language(target_language)
    for given, code in ((source_language, source_code), (target_language, target_code)):
        if code is None:
            return 1, None, (
                f"Unknown language '{given}'. Choose one of: {', '.join(LANGUAGES)}."
            )

    input_path = pathlib.Path(input_file).expanduser().resolve()
    output_path = (
        pathlib.Path(output_file).expanduser().resolve()
        if output_file
        else derive_output_path(input_path, target_code)  # type: ignore[arg-type]
    )

    try:
        validate_paths(input_path, output_path, force_overwrite=force_overwrite)
    except FileNotFoundError as exc:
        return 1, None, str(exc)
    except PalimpsestError as exc:
        return 1, None, str(exc)

    try:
        translation_provider = build_provider(
            provider,
            settings=settings,
            model=model,
            debug=provider_debug,
        )
    except TranslationProviderConfigurationError as exc:
        return 1, None, str(exc)

    session = TranslationSession(
        input_path=input_path,
        provider=translation_provider,
        source_language=source_code,  # type: ignore[arg-type]
        target_language=target_code,  # type: ignore[arg-type]
        batch=batch,
        output_path=output_path,
    )
    try:
        session.prepare()
        if verbose:
            print(
                f"Prepared {session.progress.total} text units "
                f"from {len(session.documents)} documents"
                + (" (batched)." if batch else ".")
            )
            for note in session.notes:
                print(f"  {note.message}")

        status = translation_provider.availability(source_code, target_code)  # type: ignore[arg-type]
        if status is not LanguagePairStatus.SUPPORTED:
            return 1, None, describe_unavailable(
                status,
                provider=translation_provider,
                source_language=source_code,  # type: ignore[arg-type]
                target_language=target_code,  # type: ignore[arg-type]
            )

        run_session(
            session,
            status,
            interactive=not non_interactive,
            preview=preview,
        )
        summary = session.summary()
    except NonInteractiveAbort as exc:
        return 2, None, str(exc)
    except AbortRequested:
        return 2, None, "Translation aborted at your request."
    except PalimpsestError as exc:
        return 1, None, str(exc)
    except KeyboardInterrupt:
        return 2, None, "Translation interrupted by user."
    finally:
        session.close()

    return 0, summary, None


def print_summary(summary: TranslationSummary) -> None:
    """Output a friendly report once processing completes."""

    print("\nTranslation complete.")
    print(f"  Input file:      {summary.input_path}")
    print(f"  Output file:     {summary.output_path}")
    print(
        "  Text units:      "
        f"{summary.translated_units} translated / {summary.total_units} total "
        f"({summary.fallback_units} kept in the source language)"
    )
    print(
        f"  Documents:       {summary.document_count}"
        + (f" ({summary.skipped_documents} skipped)" if summary.skipped_documents else "")
    )
    print(f"  Title:           {'translated' if summary.title_translated else 'unchanged'}")
    print(f"  Provider:        {summary.provider_name}" + (" (batched)" if summary.batched else ""))
    print(f"  Source language: {language_name(summary.source_language)}")
    print(f"  Target language: {language_name(summary.target_language)}")
    print(f"  Elapsed time:    {summary.elapsed_seconds:.2f} seconds")
    if summary.error_messages:
        print("  Notes:")
        for message in summary.error_messages:
            print(f"    - {message}")


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.list_languages:
        for code, name in LANGUAGES.items():
            print(f"{code:8} {name}")
        return 0

    if args.input_file is None:
        parser.error("the following arguments are required: input_file")
    if not args.target_language:
        parser.error("the following arguments are required: -t/--target-language")

    settings = None
    provider_debug = bool(args.debug_provider)
    source_language = args.source_language
    if requires_settings(args.provider):
        try:
            settings = get_settings()
        except TranslationProviderConfigurationError as exc:
            print(exc)
            return 1
        provider_debug = provider_debug or bool(settings.PALIMPSEST_PROVIDER_DEBUG)
        source_language = source_language or settings.PALIMPSEST_SOURCE_LANGUAGE

    exit_code, summary, message = execute_translation(
        input_file=args.input_file,
        output_file=args.output,
        target_language=args.target_language,
        source_language=source_language or "en",
        provider=args.provider,
        model=args.model,
        batch=args.batch,
        preview=args.preview,
        force_overwrite=args.force,
        non_interactive=args.non_interactive,
        verbose=args.verbose,
        provider_debug=provider_debug,
        settings=settings,
    )

    if message:
        print(message)
    if summary:
        print_summary(summary)
    return exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
