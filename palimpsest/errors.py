"""Error definitions for the Palimpsest book translator."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto


class ErrorCategory(Enum):
    """Categorises non-fatal events recorded during a session."""

    METADATA = auto()
    FILE_IO = auto()
    REINSERTION = auto()


class PalimpsestError(Exception):
    """Base exception for all custom errors."""


class ArchiveError(PalimpsestError):
    """Raised when an archive cannot be unpacked or repacked."""


class MetadataNotFound(PalimpsestError):
    """Raised when the container descriptor or its rootfile reference is missing."""


class WorkspaceIOError(PalimpsestError):
    """Raised when a single content document cannot be read or written."""


class FatalPipelineError(PalimpsestError):
    """Raised when the finishing steps of a session cannot complete."""


class TranslationProviderError(PalimpsestError):
    """Raised when the translation provider fails for a single text unit."""


class TranslationProviderConfigurationError(PalimpsestError):
    """Raised when the translation provider is misconfigured."""


class LanguagePairUnavailable(PalimpsestError):
    """Raised when translation is started without a supported language pair."""


class SessionStateError(PalimpsestError):
    """Raised when an operation is not valid in the session's current state."""


class UnsupportedFileTypeError(PalimpsestError):
    """Raised when a given file extension is not supported."""


class OverwriteRefusedError(PalimpsestError):
    """Raised when attempting to overwrite an output without consent."""


class AbortRequested(PalimpsestError):
    """Raised when the user elects to abort processing."""


class NonInteractiveAbort(PalimpsestError):
    """Raised when non-interactive mode dictates termination."""


@dataclass(frozen=True)
class ErrorRecord:
    """Stores context for a handled, non-fatal error."""

    category: ErrorCategory
    message: str
