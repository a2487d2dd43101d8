"""High-level orchestration of a book translation session."""

from __future__ import annotations

import pathlib
import shutil
import tempfile
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Tuple

from . import archive
from .errors import (
    ErrorCategory,
    ErrorRecord,
    FatalPipelineError,
    LanguagePairUnavailable,
    MetadataNotFound,
    OverwriteRefusedError,
    PalimpsestError,
    SessionStateError,
    UnsupportedFileTypeError,
)
from .languages import minimal_tag
from .markup import (
    extract_paragraphs,
    find_content_documents,
    read_document,
    reinject_paragraphs,
    write_document,
)
from .metadata import find_package_document, patch_metadata, read_field
from .providers import TranslationProvider
from .structures import (
    DocumentPlan,
    LanguagePairStatus,
    ProgressStats,
    SessionSnapshot,
    SessionState,
    TextUnit,
)


BOOK_SUFFIX = ".epub"


@dataclass
class TranslationSummary:
    """Report returned after a book has been translated."""

    input_path: pathlib.Path
    output_path: pathlib.Path
    total_units: int
    translated_units: int
    fallback_units: int
    document_count: int
    skipped_documents: int
    title_translated: bool
    batched: bool
    provider_name: str
    target_language: str
    source_language: str
    elapsed_seconds: float
    error_messages: List[str] = field(default_factory=list)


class TranslationSession:
    """Drives one book through extraction, translation, and reassembly.

    The session is the single owner of its workspace, queue, results, and
    progress counters. A worker thread calls :meth:`translate`; any other
    thread may call :meth:`request_pause` or read :meth:`snapshot`.
    """

    def __init__(
        self,
        *,
        input_path: pathlib.Path,
        provider: TranslationProvider,
        source_language: str,
        target_language: str,
        batch: bool = False,
        output_path: Optional[pathlib.Path] = None,
        workspace_root: Optional[pathlib.Path] = None,
    ) -> None:
        self.input_path = input_path
        self.provider = provider
        self.source_language = source_language
        self.target_language = target_language
        self.language_tag = minimal_tag(target_language)
        self.batch = batch
        self.workspace_root = workspace_root

        self._requested_output = output_path
        self._state = SessionState.IDLE
        self._error: Optional[str] = None
        self._workspace: Optional[pathlib.Path] = None
        self._package_document: Optional[pathlib.Path] = None
        self._documents: List[DocumentPlan] = []
        self._units: List[TextUnit] = []
        self._title_index: Optional[int] = None
        self._queue: Deque[TextUnit] = deque()
        self._results: Dict[int, str] = {}
        self._progress = ProgressStats()
        self._current: Optional[TextUnit] = None
        self._latest_index: Optional[int] = None
        self._fallback_units = 0
        self._skipped_documents = 0
        self._notes: List[ErrorRecord] = []
        self._output_path: Optional[pathlib.Path] = None
        self._stop_requested = threading.Event()
        self._started_at: Optional[float] = None
        self._finished_at: Optional[float] = None

    # --- Observation ------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def workspace(self) -> Optional[pathlib.Path]:
        return self._workspace

    @property
    def package_document(self) -> Optional[pathlib.Path]:
        return self._package_document

    @property
    def units(self) -> Tuple[TextUnit, ...]:
        return tuple(self._units)

    @property
    def documents(self) -> Tuple[DocumentPlan, ...]:
        return tuple(self._documents)

    @property
    def title_index(self) -> Optional[int]:
        return self._title_index

    @property
    def progress(self) -> ProgressStats:
        return self._progress

    @property
    def output_path(self) -> Optional[pathlib.Path]:
        return self._output_path

    @property
    def notes(self) -> Tuple[ErrorRecord, ...]:
        return tuple(self._notes)

    def results(self) -> Dict[int, str]:
        """Return a copy of the translated text by unit index."""

        return dict(self._results)

    def snapshot(self) -> SessionSnapshot:
        state = self._state
        current = self._current
        latest = self._latest_index
        return SessionSnapshot(
            state=state,
            progress=self._progress,
            current_source=(
                current.source_text
                if current is not None and state is SessionState.TRANSLATING
                else None
            ),
            latest_result=self._results.get(latest) if latest is not None else None,
            error=self._error,
            output_path=self._output_path,
            notes=tuple(self._notes),
        )

    # --- Lifecycle --------------------------------------------------------

    def prepare(self) -> SessionState:
        """Unpack the book and build the unit queue."""

        if self._state is not SessionState.IDLE:
            raise SessionStateError(
                f"Cannot prepare a session that is {self._state.value}."
            )
        self._state = SessionState.PREPARING
        try:
            self._workspace = self._allocate_workspace()
            archive.unpack(self.input_path, self._workspace)
            self._queue_title(self._workspace)
            self._queue_documents(self._workspace)
        except PalimpsestError as exc:
            self._fail(str(exc))
            raise

        self._queue = deque(self._units)
        self._progress = ProgressStats(total=len(self._units))
        self._state = SessionState.READY
        return self._state

    def translate(
        self,
        pair_status: LanguagePairStatus = LanguagePairStatus.UNKNOWN,
    ) -> SessionState:
        """Translate queued units until the queue is empty or a pause is requested.

        Starting from ``READY`` requires ``pair_status`` to be ``SUPPORTED``;
        resuming from ``PAUSED`` does not check it again.
        """

        if self._state is SessionState.READY:
            if pair_status is not LanguagePairStatus.SUPPORTED:
                raise LanguagePairUnavailable(
                    f"Translation from {self.source_language} to "
                    f"{self.target_language} is {pair_status.value}."
                )
        elif self._state is not SessionState.PAUSED:
            raise SessionStateError(
                f"Cannot translate a session that is {self._state.value}."
            )

        self._state = SessionState.TRANSLATING
        if self._started_at is None:
            self._started_at = time.monotonic()

        while self._queue:
            if self._stop_requested.is_set():
                self._stop_requested.clear()
                self._current = None
                self._state = SessionState.PAUSED
                return self._state
            self._translate_unit(self._queue.popleft())

        self._current = None
        self._finish()
        return self._state

    def request_pause(self) -> None:
        """Ask the worker to stop at the next unit boundary.

        A request made before translation starts pauses before the first unit.
        """

        self._stop_requested.set()

    def abort(self) -> None:
        """Give up on a session that is not currently translating."""

        if self._state not in {SessionState.READY, SessionState.PAUSED}:
            raise SessionStateError(
                f"Cannot abort a session that is {self._state.value}."
            )
        self._fail("Translation aborted at your request.")

    def close(self) -> None:
        """Remove the workspace folder."""

        if self._workspace is not None:
            shutil.rmtree(self._workspace, ignore_errors=True)
            self._workspace = None

    def __enter__(self) -> "TranslationSession":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def summary(self) -> TranslationSummary:
        if self._state is not SessionState.COMPLETED or self._output_path is None:
            raise SessionStateError("The translation has not completed yet.")
        started = self._started_at or 0.0
        finished = self._finished_at or started
        return TranslationSummary(
            input_path=self.input_path,
            output_path=self._output_path,
            total_units=self._progress.total,
            translated_units=self._progress.completed - self._fallback_units,
            fallback_units=self._fallback_units,
            document_count=len(self._documents),
            skipped_documents=self._skipped_documents,
            title_translated=self._title_index is not None,
            batched=self.batch,
            provider_name=self.provider.name,
            target_language=self.target_language,
            source_language=self.source_language,
            elapsed_seconds=finished - started,
            error_messages=[record.message for record in self._notes],
        )

    # --- Preparing --------------------------------------------------------

    def _allocate_workspace(self) -> pathlib.Path:
        try:
            if self.workspace_root is None:
                return pathlib.Path(tempfile.mkdtemp(prefix="palimpsest-"))
            workspace = self.workspace_root / f"palimpsest-{uuid.uuid4().hex}"
            workspace.mkdir(parents=True)
            return workspace
        except OSError as exc:
            raise FatalPipelineError(
                f"Could not create a workspace folder: {exc}"
            ) from exc

    def _queue_title(self, workspace: pathlib.Path) -> None:
        try:
            self._package_document = find_package_document(workspace)
            title = read_field(self._package_document, "title")
        except MetadataNotFound as exc:
            self._package_document = None
            self._note(ErrorCategory.METADATA, f"{exc} The title stays untranslated.")
            return
        except PalimpsestError as exc:
            self._note(ErrorCategory.METADATA, f"{exc} The title stays untranslated.")
            return
        if not title:
            return
        self._title_index = len(self._units)
        self._units.append(TextUnit(index=self._title_index, source_text=title))

    def _queue_documents(self, workspace: pathlib.Path) -> None:
        for path in find_content_documents(workspace):
            try:
                markup = read_document(path)
            except PalimpsestError as exc:
                self._skipped_documents += 1
                self._note(ErrorCategory.FILE_IO, f"Skipping {self._relative(path)}. {exc}")
                continue
            paragraphs = extract_paragraphs(markup, self.batch)
            for paragraph in paragraphs:
                self._units.append(
                    TextUnit(
                        index=len(self._units),
                        source_text=paragraph.text,
                        source_file=path,
                        span=paragraph.span,
                        batch_size=paragraph.size,
                    )
                )
            self._documents.append(DocumentPlan(path=path, unit_count=len(paragraphs)))

    # --- Translating ------------------------------------------------------

    def _translate_unit(self, unit: TextUnit) -> None:
        self._current = unit
        started = time.monotonic()
        try:
            translated = self.provider.translate(
                unit.source_text,
                source_language=self.source_language,
                target_language=self.target_language,
            )
        except Exception:
            translated = unit.source_text
            self._fallback_units += 1
        elapsed = time.monotonic() - started
        self._results[unit.index] = translated
        self._latest_index = unit.index
        self._progress = self._progress.record(elapsed)

    # --- Completing -------------------------------------------------------

    def _finish(self) -> None:
        try:
            if self._progress.completed != self._progress.total:
                raise FatalPipelineError(
                    f"Only {self._progress.completed} of {self._progress.total} "
                    "units were translated."
                )
            self._reinject()
            self._patch_metadata()
            output_path = self._requested_output or pathlib.Path(
                tempfile.gettempdir()
            ) / f"translated-{uuid.uuid4()}{BOOK_SUFFIX}"
            archive.repack(self._workspace, output_path)  # type: ignore[arg-type]
        except FatalPipelineError as exc:
            self._fail(str(exc))
            raise
        except PalimpsestError as exc:
            self._fail(str(exc))
            raise FatalPipelineError(str(exc)) from exc

        self._output_path = output_path
        self._finished_at = time.monotonic()
        self._state = SessionState.COMPLETED

    def _reinject(self) -> None:
        workspace = self._workspace
        if workspace is None or not workspace.is_dir():
            raise FatalPipelineError(
                "The workspace folder is missing; the translated book cannot be assembled."
            )
        cursor = 0 if self._title_index is None else self._title_index + 1
        for plan in self._documents:
            translations = [
                self._results[index]
                for index in range(cursor, cursor + plan.unit_count)
            ]
            cursor += plan.unit_count
            if not translations:
                continue
            try:
                markup = read_document(plan.path)
                write_document(
                    plan.path,
                    reinject_paragraphs(markup, translations, self.batch),
                )
            except PalimpsestError as exc:
                self._skipped_documents += 1
                self._note(
                    ErrorCategory.REINSERTION,
                    f"Left {self._relative(plan.path)} untranslated. {exc}",
                )

    def _patch_metadata(self) -> None:
        if self._title_index is None or self._package_document is None:
            return
        try:
            patch_metadata(
                self._package_document,
                translated_title=self._results[self._title_index],
                language_tag=self.language_tag,
            )
        except PalimpsestError as exc:
            raise FatalPipelineError(
                f"Could not update the book's title and language: {exc}"
            ) from exc

    # --- Helpers ----------------------------------------------------------

    def _fail(self, message: str) -> None:
        self._current = None
        self._error = message
        self._state = SessionState.FAILED

    def _note(self, category: ErrorCategory, message: str) -> None:
        self._notes.append(ErrorRecord(category=category, message=message))

    def _relative(self, path: pathlib.Path) -> str:
        if self._workspace is None:
            return path.name
        try:
            return path.relative_to(self._workspace).as_posix()
        except ValueError:
            return path.name


def validate_paths(
    input_path: pathlib.Path,
    output_path: pathlib.Path,
    force_overwrite: bool,
) -> None:
    """Validate input/output path combinations and overwrite policy."""

    if not input_path.exists():
        raise FileNotFoundError(
            "Input file not found. Please provide a readable .epub file."
        )
    if not input_path.is_file():
        raise PalimpsestError("Input path must be a file.")
    if input_path.suffix.lower() != BOOK_SUFFIX:
        raise UnsupportedFileTypeError(
            "This file type isn’t supported — please use an .epub book."
        )

    if input_path.resolve() == output_path.resolve():
        raise OverwriteRefusedError(
            "The output path matches the input book. Refusing to overwrite the source file."
        )

    if output_path.exists() and not force_overwrite:
        raise OverwriteRefusedError(
            "The output file already exists — rename or use the overwrite flag."
        )


def translate_book(
    *,
    input_path: pathlib.Path,
    output_path: Optional[pathlib.Path],
    provider: TranslationProvider,
    source_language: str,
    target_language: str,
    batch: bool = False,
) -> TranslationSummary:
    """Translate a whole book in the calling thread and return the summary."""

    with TranslationSession(
        input_path=input_path,
        provider=provider,
        source_language=source_language,
        target_language=target_language,
        batch=batch,
        output_path=output_path,
    ) as session:
        session.prepare()
        session.translate(provider.availability(source_language, target_language))
        return session.summary()
