"""Paragraph extraction from and reinsertion into markup documents."""

from __future__ import annotations

import pathlib
import re
from typing import Dict, Iterator, List, NamedTuple, Optional, Sequence

from .errors import WorkspaceIOError
from .structures import Paragraph, Span


CONTENT_SUFFIXES = {".html", ".xhtml", ".htm"}
PARAGRAPH_TAG = "p"
BATCH_SIZE = 20
BATCH_SEPARATOR = "\n\n"

ATTRIBUTES = r"(?:\s(?:[^>\"']|\"[^\"]*\"|'[^']*')*)?"

TAG_PATTERN = re.compile(
    r"<!--.*?-->"
    r"|<!\[CDATA\[.*?\]\]>"
    r"|<(?P<close>/)?(?P<name>[A-Za-z][\w:.-]*)"
    rf"(?P<attrs>{ATTRIBUTES})(?P<slash>/)?>",
    re.DOTALL,
)
LINE_BREAK_PATTERN = re.compile(r"<br\s*/?>", re.IGNORECASE)
WRAPPER_PATTERN = re.compile(
    rf"^(?P<open><p{ATTRIBUTES}>).*(?P<close></p\s*>)$",
    re.IGNORECASE | re.DOTALL,
)


class Tag(NamedTuple):
    """An element tag located in a document."""

    name: str
    start: int
    end: int
    closing: bool
    self_closing: bool


def iter_tags(markup: str) -> Iterator[Tag]:
    """Yield element tags in document order, skipping comments and CDATA."""

    for match in TAG_PATTERN.finditer(markup):
        name = match.group("name")
        if name is None:
            continue
        attrs = match.group("attrs") or ""
        yield Tag(
            name=name.lower(),
            start=match.start(),
            end=match.end(),
            closing=match.group("close") is not None,
            self_closing=bool(match.group("slash")) or attrs.rstrip().endswith("/"),
        )


def to_plain_text(content: str) -> str:
    """Turn a paragraph's inner markup into translatable plain text."""

    text = LINE_BREAK_PATTERN.sub("\n", content)
    text = TAG_PATTERN.sub("", text)
    return text.replace("\u00a0", " ").strip()


def _scan_paragraphs(markup: str) -> List[Paragraph]:
    paragraphs: List[Paragraph] = []
    open_tag: Optional[Tag] = None
    for tag in iter_tags(markup):
        if tag.name != PARAGRAPH_TAG or tag.self_closing:
            continue
        if not tag.closing:
            # A nested opening tag is ignored: the first close ends the paragraph.
            if open_tag is None:
                open_tag = tag
            continue
        if open_tag is None:
            continue
        content = markup[open_tag.end:tag.start]
        paragraphs.append(
            Paragraph(span=(open_tag.start, tag.end), text=to_plain_text(content))
        )
        open_tag = None
    return paragraphs


def batch_paragraphs(
    paragraphs: Sequence[Paragraph],
    size: int = BATCH_SIZE,
) -> List[Paragraph]:
    """Merge consecutive paragraphs into runs of ``size``."""

    merged: List[Paragraph] = []
    for start in range(0, len(paragraphs), size):
        chunk = paragraphs[start:start + size]
        merged.append(
            Paragraph(
                span=(chunk[0].span[0], chunk[-1].span[1]),
                text=BATCH_SEPARATOR.join(item.text for item in chunk),
                size=len(chunk),
            )
        )
    return merged


def extract_paragraphs(markup: str, batch: bool = False) -> List[Paragraph]:
    """Extract paragraph units from ``markup`` in document order.

    The result depends only on the input text, so running it again on an
    unmodified document yields the same spans.
    """

    paragraphs = _scan_paragraphs(markup)
    if batch and paragraphs:
        return batch_paragraphs(paragraphs)
    return paragraphs


def rebuild_paragraph(original: str, replacement: str) -> str:
    """Wrap ``replacement`` in the open and close tags of ``original``."""

    match = WRAPPER_PATTERN.match(original)
    if match is None:
        return f"<p>{replacement}</p>"
    return match.group("open") + replacement + match.group("close")


def replace_paragraphs(markup: str, replacements: Dict[Span, str]) -> str:
    """Apply span replacements from the end of the document backwards."""

    updated = markup
    for span in sorted(replacements, key=lambda item: item[0], reverse=True):
        start, end = span
        rebuilt = rebuild_paragraph(updated[start:end], replacements[span])
        updated = updated[:start] + rebuilt + updated[end:]
    return updated


def reinject_paragraphs(
    markup: str,
    translations: Sequence[str],
    batch: bool = False,
) -> str:
    """Substitute ``translations`` for the paragraphs of ``markup`` in order.

    Spans are regenerated from ``markup`` itself, so the document must be the
    same text the translations were extracted from.
    """

    paragraphs = extract_paragraphs(markup, batch)
    if len(paragraphs) != len(translations):
        raise WorkspaceIOError(
            f"Document has {len(paragraphs)} paragraph units, "
            f"expected {len(translations)}; it changed since extraction."
        )
    replacements = {
        paragraph.span: translated
        for paragraph, translated in zip(paragraphs, translations)
    }
    return replace_paragraphs(markup, replacements)


def find_content_documents(root: pathlib.Path) -> List[pathlib.Path]:
    """List markup documents under ``root`` in a stable order."""

    return sorted(
        (
            path
            for path in root.rglob("*")
            if path.is_file() and path.suffix.lower() in CONTENT_SUFFIXES
        ),
        key=lambda path: path.relative_to(root).as_posix(),
    )


def read_document(path: pathlib.Path) -> str:
    """Decode a workspace document as UTF-8."""

    try:
        return path.read_bytes().decode("utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise WorkspaceIOError(f"Could not read {path.name}: {exc}") from exc


def write_document(path: pathlib.Path, text: str) -> None:
    try:
        path.write_bytes(text.encode("utf-8"))
    except OSError as exc:
        raise WorkspaceIOError(f"Could not write {path.name}: {exc}") from exc
