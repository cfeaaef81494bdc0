"""Error kinds raised by the reconciliation pipeline.

Only whole-file problems raise. Per-row problems degrade to defaults inside
the normaliser and classifier.
"""

from __future__ import annotations


class ReconError(ValueError):
    """Base class for errors surfaced to the user as a single message."""

    def __init__(self, message: str, *, source: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.source = source

    def with_source(self, source: str) -> "ReconError":
        self.source = source
        return self

    def user_message(self) -> str:
        if self.source:
            return f"Error processing {self.source} file: {self.message}"
        return self.message


class DecodeError(ReconError):
    """Raw bytes could not be parsed as a spreadsheet."""


class EmptyDataError(ReconError):
    """The file parsed but contained zero usable rows."""


class ClassificationError(ReconError):
    """The report kind could not be inferred from its rows."""

    def __init__(
        self,
        message: str,
        *,
        missing: list[str] | None = None,
        source: str | None = None,
    ) -> None:
        super().__init__(message, source=source)
        self.missing = list(missing or [])

    def user_message(self) -> str:
        text = super().user_message()
        if self.missing:
            text += " Could not find: " + ", ".join(self.missing) + "."
        return text


class MatchingInputError(ReconError, TypeError):
    """Inputs to the matcher were not both sequences."""


def describe_error(exc: BaseException) -> str:
    if isinstance(exc, ReconError):
        return exc.user_message()
    if isinstance(exc, FileNotFoundError):
        return str(exc)
    return f"Unexpected error: {exc}"
