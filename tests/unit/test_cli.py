"""Unit tests for the command line front end."""

import threading
from pathlib import Path

import pytest

from palimpsest import cli
from palimpsest.cli import (
    derive_output_path,
    describe_unavailable,
    execute_translation,
    format_progress,
    main,
    run_session,
    sanitise_language_for_filename,
)
from palimpsest.errors import AbortRequested, LanguagePairUnavailable, NonInteractiveAbort
from palimpsest.providers import EchoTranslationProvider
from palimpsest.structures import (
    LanguagePairStatus,
    ProgressStats,
    SessionSnapshot,
    SessionState,
)
from palimpsest.translator import TranslationSession


def run_options(input_file, **overrides):
    options = {
        "input_file": str(input_file),
        "output_file": None,
        "target_language": "fr",
        "source_language": "en",
        "provider": "echo",
        "model": None,
        "batch": False,
        "preview": "off",
        "force_overwrite": False,
        "non_interactive": True,
        "verbose": False,
        "provider_debug": False,
    }
    options.update(overrides)
    return options


class TestOutputNaming:
    """Test the default output path."""

    def test_appends_language_code(self):
        """The language code is inserted before the suffix."""
        assert derive_output_path(Path("/books/novel.epub"), "zh-Hans") == Path(
            "/books/novel_zh-Hans.epub"
        )

    def test_sanitises_descriptor(self):
        """Spaces collapse to hyphens and punctuation is dropped."""
        assert sanitise_language_for_filename(" Chinese (Traditional) ") == "Chinese-Traditional"
        assert sanitise_language_for_filename("日本語") == "translated"


class TestFormatProgress:
    """Test the one-line progress display."""

    def snapshot(self, **overrides):
        values = {
            "state": SessionState.TRANSLATING,
            "progress": ProgressStats(total=10, completed=4, running_average_seconds=2.0),
            "current_source": "The boat came in at dawn.",
            "latest_result": "Le bateau est arrivé à l'aube.",
        }
        values.update(overrides)
        return SessionSnapshot(**values)

    def test_counts_and_eta(self):
        """Completed and total units are shown with the estimate."""
        assert format_progress(self.snapshot(), "off") == "  4/10  ETA 12s"

    def test_source_preview(self):
        """The source preview shows the unit in flight."""
        line = format_progress(self.snapshot(), "source")

        assert line.endswith("| The boat came in at dawn.")

    def test_target_preview_truncated(self):
        """Long previews are flattened and shortened."""
        snapshot = self.snapshot(latest_result="word\n" * 40)

        line = format_progress(snapshot, "target")

        preview = line.split("| ", 1)[1]
        assert "\n" not in preview
        assert len(preview) == 60
        assert preview.endswith("…")

    def test_no_eta_before_first_unit(self):
        """The estimate is omitted until a unit has finished."""
        snapshot = self.snapshot(progress=ProgressStats(total=3))

        assert format_progress(snapshot, "off") == "  0/3"


class TestDescribeUnavailable:
    """Test start-gate messages."""

    def test_same_language(self):
        """Identical languages get a dedicated message."""
        message = describe_unavailable(
            LanguagePairStatus.UNSUPPORTED,
            provider=EchoTranslationProvider(),
            source_language="en",
            target_language="en",
        )

        assert "same" in message

    def test_unknown(self):
        """An unconfirmed pair names both languages."""
        message = describe_unavailable(
            LanguagePairStatus.UNKNOWN,
            provider=EchoTranslationProvider(),
            source_language="en",
            target_language="ja",
        )

        assert "English to Japanese" in message


class TestExecuteTranslation:
    """Test a full run through the front end with the echo provider."""

    def test_end_to_end(self, sample_epub):
        """A run writes the derived output and reports a summary."""
        exit_code, summary, message = execute_translation(**run_options(sample_epub))

        assert exit_code == 0
        assert message is None
        assert summary.output_path == sample_epub.with_name("book_fr.epub")
        assert summary.output_path.is_file()
        assert summary.total_units == 4
        assert summary.fallback_units == 0

    def test_unknown_language(self, sample_epub):
        """An unsupported target language is rejected before any work."""
        exit_code, summary, message = execute_translation(
            **run_options(sample_epub, target_language="Klingon")
        )

        assert exit_code == 1
        assert summary is None
        assert "Unknown language 'Klingon'" in message

    def test_same_language_refused(self, sample_epub):
        """Translation into the source language does not start."""
        exit_code, summary, message = execute_translation(
            **run_options(sample_epub, target_language="en-US")
        )

        assert exit_code == 1
        assert "same" in message
        assert not sample_epub.with_name("book_en.epub").exists()

    def test_existing_output_without_force(self, sample_epub, tmp_path):
        """An existing output file is not overwritten unless forced."""
        output = tmp_path / "out.epub"
        output.write_bytes(b"keep")

        exit_code, _, message = execute_translation(
            **run_options(sample_epub, output_file=str(output))
        )

        assert exit_code == 1
        assert "already exists" in message
        assert output.read_bytes() == b"keep"

        exit_code, summary, _ = execute_translation(
            **run_options(sample_epub, output_file=str(output), force_overwrite=True)
        )
        assert exit_code == 0
        assert output.read_bytes() != b"keep"

    def test_wrong_file_type(self, tmp_path):
        """Only EPUB input is accepted."""
        document = tmp_path / "notes.txt"
        document.write_text("hello")

        exit_code, _, message = execute_translation(**run_options(document))

        assert exit_code == 1
        assert ".epub" in message

    def test_missing_input(self, tmp_path):
        """A missing input file is reported."""
        exit_code, _, message = execute_translation(**run_options(tmp_path / "none.epub"))

        assert exit_code == 1
        assert "not found" in message

    def test_corrupt_book(self, tmp_path):
        """An unreadable archive fails with exit code 1."""
        broken = tmp_path / "broken.epub"
        broken.write_bytes(b"not a zip")

        exit_code, summary, message = execute_translation(**run_options(broken))

        assert exit_code == 1
        assert summary is None
        assert message


class InterruptOnce:
    """Replaces the progress watcher and presses Ctrl+C during the first unit.

    The first provider call is held until the pause has been requested, so the
    interrupt always lands while a unit is in flight.
    """

    def __init__(self, provider):
        self.calls = 0
        self.started = threading.Event()
        self.release = threading.Event()
        provider.on_call = self._hold_first_call

    def _hold_first_call(self, number):
        if number == 0:
            self.started.set()
            self.release.wait(5)

    def __call__(self, session, worker, preview):
        self.calls += 1
        if self.calls > 1:
            worker.join()
            return
        self.started.wait(5)
        request_pause = session.request_pause

        def pause_and_release():
            request_pause()
            self.release.set()

        session.request_pause = pause_and_release
        raise KeyboardInterrupt


@pytest.fixture
def interrupt_once(monkeypatch, upper_provider):
    watcher = InterruptOnce(upper_provider)
    monkeypatch.setattr(cli, "_watch", watcher)
    return watcher


@pytest.fixture
def answers(monkeypatch):
    """Feed scripted replies to the resume prompt and record the prompts."""
    prompts = []

    def _answer(*replies):
        remaining = iter(replies)

        def fake_input(prompt=""):
            prompts.append(prompt)
            return next(remaining)

        monkeypatch.setattr("builtins.input", fake_input)
        return prompts

    return _answer


@pytest.fixture
def session(sample_epub, workspace_root, tmp_path, upper_provider):
    with TranslationSession(
        input_path=sample_epub,
        provider=upper_provider,
        source_language="en",
        target_language="fr",
        output_path=tmp_path / "out.epub",
        workspace_root=workspace_root,
    ) as session:
        session.prepare()
        yield session


class TestRunSession:
    """Test the worker thread and the pause prompt."""

    def test_runs_to_completion(self, session, upper_provider, capsys):
        """Without an interrupt the worker drains the queue."""
        run_session(
            session, LanguagePairStatus.SUPPORTED, interactive=True, preview="off"
        )

        assert session.state is SessionState.COMPLETED
        assert len(upper_provider.calls) == 4
        assert "4/4" in capsys.readouterr().out

    def test_worker_failure_is_raised(self, session):
        """An error inside the worker reaches the caller."""
        with pytest.raises(LanguagePairUnavailable):
            run_session(
                session, LanguagePairStatus.UNKNOWN, interactive=True, preview="off"
            )

    def test_interrupt_then_resume(self, session, upper_provider, interrupt_once, answers):
        """Ctrl+C pauses after the current unit and resume finishes the book."""
        prompts = answers("maybe", "r")

        run_session(
            session, LanguagePairStatus.SUPPORTED, interactive=True, preview="off"
        )

        assert session.state is SessionState.COMPLETED
        assert len(prompts) == 2
        assert "paused at 1/4" in prompts[0]
        assert interrupt_once.calls == 2
        assert len(upper_provider.calls) == 4

    def test_interrupt_then_abort(self, session, interrupt_once, answers):
        """Choosing abort fails the session."""
        answers("abort")

        with pytest.raises(AbortRequested):
            run_session(
                session, LanguagePairStatus.SUPPORTED, interactive=True, preview="off"
            )

        assert session.state is SessionState.FAILED
        assert session.progress.completed == 1

    def test_interrupt_non_interactive(self, session, interrupt_once):
        """Without prompts an interrupt stops the run."""
        with pytest.raises(NonInteractiveAbort):
            run_session(
                session, LanguagePairStatus.SUPPORTED, interactive=False, preview="off"
            )

        assert session.state is SessionState.FAILED


class TestExecuteTranslationInterrupted:
    """Test exit codes when a run is interrupted."""

    @pytest.fixture(autouse=True)
    def use_upper_provider(self, monkeypatch, upper_provider):
        monkeypatch.setattr(cli, "build_provider", lambda *args, **kwargs: upper_provider)

    def test_non_interactive_exit_code(self, sample_epub, interrupt_once):
        """An interrupt in non-interactive mode exits with code 2."""
        exit_code, summary, message = execute_translation(**run_options(sample_epub))

        assert exit_code == 2
        assert summary is None
        assert "non-interactive" in message
        assert not sample_epub.with_name("book_fr.epub").exists()

    def test_abort_exit_code(self, sample_epub, interrupt_once, answers):
        """Aborting at the prompt exits with code 2."""
        answers("a")

        exit_code, summary, message = execute_translation(
            **run_options(sample_epub, non_interactive=False)
        )

        assert exit_code == 2
        assert summary is None
        assert message == "Translation aborted at your request."

    def test_resume_completes(self, sample_epub, interrupt_once, answers):
        """Resuming at the prompt finishes the book."""
        answers("resume")

        exit_code, summary, message = execute_translation(
            **run_options(sample_epub, non_interactive=False)
        )

        assert exit_code == 0
        assert message is None
        assert summary.translated_units == 4
        assert summary.output_path.is_file()


class TestMain:
    """Test argument handling."""

    def test_list_languages(self, capsys):
        """The language list is printed without other arguments."""
        assert main(["--list-languages"]) == 0

        output = capsys.readouterr().out
        assert "zh-Hant" in output
        assert "Japanese" in output

    def test_requires_target_language(self, sample_epub):
        """A target language must be given."""
        with pytest.raises(SystemExit):
            main([str(sample_epub), "-p", "echo"])

    def test_echo_run(self, sample_epub, tmp_path, capsys):
        """The echo provider runs without configuration."""
        output = tmp_path / "copy.epub"

        exit_code = main(
            [str(sample_epub), "-t", "de", "-p", "echo", "-o", str(output), "--non-interactive"]
        )

        assert exit_code == 0
        assert output.is_file()
        assert "Translation complete." in capsys.readouterr().out
