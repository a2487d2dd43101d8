"""Locating, reading and rewriting the book's package document metadata."""

from __future__ import annotations

import pathlib
import re
from typing import Optional

from .errors import MetadataNotFound
from .markup import read_document, write_document


CONTAINER_PATH = pathlib.PurePosixPath("META-INF/container.xml")

FULL_PATH_PATTERN = re.compile(
    r"full-path\s*=\s*[\"'](?P<path>.*?)[\"']",
    re.IGNORECASE | re.DOTALL,
)
METADATA_OPEN_PATTERN = re.compile(
    r"<(?:[A-Za-z][\w.-]*:)?metadata(?:\s[^>]*)?>",
    re.IGNORECASE,
)


def _field_pattern(field_name: str) -> re.Pattern[str]:
    name = re.escape(field_name)
    return re.compile(
        rf"(?P<open><dc:{name}(?:\s[^>]*)?>)(?P<content>.*?)(?P<close></dc:{name}\s*>)",
        re.IGNORECASE | re.DOTALL,
    )


def find_package_document(root: pathlib.Path) -> pathlib.Path:
    """Resolve the package document named by the container descriptor."""

    container = root.joinpath(*CONTAINER_PATH.parts)
    try:
        descriptor = container.read_bytes().decode("utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise MetadataNotFound(
            f"No readable {CONTAINER_PATH} found in the book."
        ) from exc
    match = FULL_PATH_PATTERN.search(descriptor)
    if match is None:
        raise MetadataNotFound(
            f"{CONTAINER_PATH} does not reference a package document."
        )
    return root.joinpath(*pathlib.PurePosixPath(match.group("path")).parts)


def locate_package_document(root: pathlib.Path) -> Optional[pathlib.Path]:
    """Return the package document path, or ``None`` when it cannot be found."""

    try:
        return find_package_document(root)
    except MetadataNotFound:
        return None


def find_field(xml: str, field_name: str) -> Optional[str]:
    """Return the trimmed inner text of the first ``dc:<field_name>`` element."""

    match = _field_pattern(field_name).search(xml)
    if match is None:
        return None
    return match.group("content").strip()


def replace_field(xml: str, field_name: str, value: str) -> str:
    """Replace the first ``dc:<field_name>`` element's text, or insert one.

    The element's own tags are kept verbatim. When the element is missing, a
    minimal one goes right after the first metadata container's opening tag;
    without a metadata container the text is returned unchanged.
    """

    match = _field_pattern(field_name).search(xml)
    if match is not None:
        rebuilt = match.group("open") + value + match.group("close")
        return xml[: match.start()] + rebuilt + xml[match.end():]

    container = METADATA_OPEN_PATTERN.search(xml)
    if container is None:
        return xml
    element = f"\n<dc:{field_name}>{value}</dc:{field_name}>"
    return xml[: container.end()] + element + xml[container.end():]


def read_field(document: pathlib.Path, field_name: str) -> Optional[str]:
    return find_field(read_document(document), field_name)


def write_field(document: pathlib.Path, field_name: str, value: str) -> None:
    original = read_document(document)
    updated = replace_field(original, field_name, value)
    if updated == original:
        return
    write_document(document, updated)


def patch_metadata(
    document: pathlib.Path,
    *,
    translated_title: str,
    language_tag: str,
) -> None:
    """Write the translated title and the target language tag."""

    write_field(document, "title", translated_title)
    write_field(document, "language", language_tag)
