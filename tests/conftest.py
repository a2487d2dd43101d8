"""
Pytest configuration and fixtures shared by all tests.

Books are built on the fly with zipfile so every test works on its own copy,
and translation providers are in-process fakes.
"""

import zipfile
from pathlib import Path

import pytest

from palimpsest.errors import TranslationProviderError
from palimpsest.providers import TranslationProvider


CONTAINER_XML = """<?xml version="1.0" encoding="UTF-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""

CONTENT_OPF = """<?xml version="1.0" encoding="utf-8"?>
<package xmlns="http://www.idpf.org/2007/opf" version="3.0" unique-identifier="uid">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">
    <dc:title id="main-title"> A Quiet Harbour </dc:title>
    <dc:language>en</dc:language>
    <dc:identifier id="uid">urn:uuid:1234</dc:identifier>
  </metadata>
  <manifest/>
</package>
"""

CHAPTER_ONE = (
    "<?xml version=\"1.0\" encoding=\"utf-8\"?>\n"
    "<html xmlns=\"http://www.w3.org/1999/xhtml\"><body>\n"
    "<h1>Chapter One</h1>\n"
    "<p class=\"first\">The boat came in at dawn.</p>\n"
    "<p>Gulls<br/>circled\u00a0overhead.</p>\n"
    "</body></html>\n"
)

CHAPTER_TWO = (
    "<html><body>\n"
    "<p id=\"quiet\">Nobody spoke.</p>\n"
    "</body></html>\n"
)

IMAGE_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x01"


def default_book_files():
    return {
        "META-INF/container.xml": CONTAINER_XML,
        "OEBPS/content.opf": CONTENT_OPF,
        "OEBPS/text/ch1.xhtml": CHAPTER_ONE,
        "OEBPS/text/ch2.xhtml": CHAPTER_TWO,
        "OEBPS/images/dot.png": IMAGE_BYTES,
    }


def write_epub(path, files):
    """Write an EPUB archive with a stored mimetype entry first."""
    with zipfile.ZipFile(path, "w", zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(
            "mimetype", "application/epub+zip", compress_type=zipfile.ZIP_STORED
        )
        for name, content in files.items():
            if isinstance(content, str):
                content = content.encode("utf-8")
            archive.writestr(name, content)
    return path


class UpperCaseProvider(TranslationProvider):
    """Upper-cases text and remembers every call."""

    name = "upper"

    def __init__(self):
        self.calls = []
        self.on_call = None

    def translate(self, text, *, source_language, target_language):
        call_number = len(self.calls)
        self.calls.append(text)
        if self.on_call is not None:
            self.on_call(call_number)
        return text.upper()


class FlakyProvider(UpperCaseProvider):
    """Fails on the given call numbers (0-based)."""

    name = "flaky"

    def __init__(self, failing_calls):
        super().__init__()
        self.failing_calls = set(failing_calls)

    def translate(self, text, *, source_language, target_language):
        call_number = len(self.calls)
        translated = super().translate(
            text, source_language=source_language, target_language=target_language
        )
        if call_number in self.failing_calls:
            raise TranslationProviderError("Translation service temporarily unavailable")
        return translated


@pytest.fixture
def make_epub(tmp_path):
    """Factory building an EPUB in tmp_path; ``files`` replaces the default layout."""

    def _make(name="book.epub", files=None):
        return write_epub(tmp_path / name, default_book_files() if files is None else files)

    return _make


@pytest.fixture
def sample_epub(make_epub):
    return make_epub()


@pytest.fixture
def workspace_root(tmp_path):
    root = tmp_path / "workspaces"
    root.mkdir()
    return root


@pytest.fixture
def upper_provider():
    return UpperCaseProvider()


@pytest.fixture
def flaky_provider_factory():
    return FlakyProvider


@pytest.fixture
def book_files():
    return default_book_files()


def read_entry(archive_path, name):
    with zipfile.ZipFile(archive_path) as archive:
        return archive.read(name)


@pytest.fixture
def read_archive_entry():
    return read_entry
