"""Unpacking and repacking of e-book archives."""

from __future__ import annotations

import os
import pathlib
import shutil
import zipfile

from .errors import ArchiveError


MIMETYPE_ENTRY = "mimetype"


def unpack(archive_path: pathlib.Path, destination: pathlib.Path) -> None:
    """Extract every entry of ``archive_path`` into a fresh ``destination``."""

    try:
        if destination.exists():
            shutil.rmtree(destination)
        destination.mkdir(parents=True)
        with zipfile.ZipFile(archive_path, "r") as archive:
            root = destination.resolve()
            for info in archive.infolist():
                target = (destination / info.filename).resolve()
                if target != root and root not in target.parents:
                    raise ArchiveError(
                        f"Archive entry '{info.filename}' points outside the workspace."
                    )
                if info.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                with archive.open(info) as source, open(target, "wb") as sink:
                    shutil.copyfileobj(source, sink)
    except ArchiveError:
        raise
    except (zipfile.BadZipFile, zipfile.LargeZipFile) as exc:
        raise ArchiveError(
            f"The book archive could not be read — it may be damaged ({exc})."
        ) from exc
    except OSError as exc:
        raise ArchiveError(f"Could not unpack the book archive: {exc}") from exc


def iter_files(source_dir: pathlib.Path) -> list[pathlib.Path]:
    """List regular files below ``source_dir`` as sorted relative paths."""

    files: list[pathlib.Path] = []
    for current, dirs, names in os.walk(source_dir):
        dirs.sort()
        for name in sorted(names):
            path = pathlib.Path(current) / name
            if path.is_file():
                files.append(path.relative_to(source_dir))
    return files


def repack(source_dir: pathlib.Path, output_path: pathlib.Path) -> None:
    """Write every regular file under ``source_dir`` into a new archive.

    A top-level ``mimetype`` file goes first and uncompressed, as EPUB readers
    expect; everything else is deflated.
    """

    if not source_dir.is_dir():
        raise ArchiveError(f"Workspace folder {source_dir} no longer exists.")
    try:
        if output_path.exists():
            output_path.unlink()
        output_path.parent.mkdir(parents=True, exist_ok=True)
        relative_paths = iter_files(source_dir)
        with zipfile.ZipFile(output_path, "w", zipfile.ZIP_DEFLATED) as archive:
            mimetype = pathlib.Path(MIMETYPE_ENTRY)
            if mimetype in relative_paths:
                archive.write(
                    source_dir / mimetype,
                    MIMETYPE_ENTRY,
                    compress_type=zipfile.ZIP_STORED,
                )
            for relative in relative_paths:
                if relative == mimetype:
                    continue
                archive.write(source_dir / relative, relative.as_posix())
    except OSError as exc:
        raise ArchiveError(f"Could not write the translated book: {exc}") from exc
