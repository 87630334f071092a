"""Errors raised by the streaming SDN search pipeline."""

from typing import Optional


class SearchError(Exception):
    """Base error for a failed search. The search is aborted, no partial results."""


class StreamError(SearchError):
    """Raised when the underlying input stream fails while being read"""

    def __init__(self, message: str, lines_read: int = 0):
        self.lines_read = lines_read
        super().__init__(message)


class FragmentParseError(SearchError):
    """Raised when an entry fragment cannot be parsed as standalone XML

    Attributes:
        reason: Parser message describing the failure
        line: 1-based line within the fragment (None if unknown)
        column: 1-based column within the fragment (None if unknown)
        uid: Entry uid recovered from the raw fragment, if any
    """

    def __init__(
        self,
        reason: str,
        line: Optional[int] = None,
        column: Optional[int] = None,
        uid: Optional[str] = None
    ):
        self.reason = reason
        self.line = line
        self.column = column
        self.uid = uid
        super().__init__(self._format())

    def _format(self) -> str:
        where = f" (uid={self.uid})" if self.uid else ""
        message = f"Malformed sdnEntry{where}: {self.reason}"
        if self.line is not None:
            message += f" (line {self.line}, column {self.column if self.column is not None else '?'})"
        return message


class UnterminatedEntryError(FragmentParseError):
    """Raised when the stream ends while an entry is still open"""
