"""
Entry Assembler
Turns a text stream of the SDN document into raw sdnEntry fragments

The document is consumed line by line, so memory use is bounded by the
largest single entry rather than by the whole file. Header and footer markup
outside any entry is skipped.
"""

import logging
import re
from enum import Enum
from typing import Iterable, Iterator, List, Union

from search_errors import StreamError, UnterminatedEntryError
from xml_utils import find_uid

logger = logging.getLogger(__name__)

DEFAULT_ENTRY_TAG = "sdnEntry"


class AssemblerState(Enum):
    """Position of the assembler relative to an entry"""
    OUTSIDE = "outside"
    INSIDE = "inside"


def iter_lines(chunks: Iterable[str]) -> Iterator[str]:
    """Re-split arbitrarily sized text chunks into lines

    Line endings are kept. A trailing partial line is yielded once the chunks
    are exhausted.
    """
    pending = ''
    for chunk in chunks:
        if not chunk:
            continue
        pending += chunk
        lines = pending.splitlines(keepends=True)
        # last piece may continue in the next chunk
        if lines and not lines[-1].endswith(('\n', '\r')):
            pending = lines.pop()
        else:
            pending = ''
        yield from lines
    if pending:
        yield pending


class EntryAssembler:
    """Stateful splitter of a line stream into entry fragments

    Usage:
        assembler = EntryAssembler()
        with open('sdn.xml', encoding='utf-8') as f:
            for fragment in assembler.iter_fragments(f):
                ...
    """

    def __init__(self, entry_tag: str = DEFAULT_ENTRY_TAG, encoding: str = 'utf-8'):
        """Initialize the assembler

        Args:
            entry_tag: Element name delimiting one entry
            encoding: Used only when the stream yields bytes
        """
        self.entry_tag = entry_tag
        self.encoding = encoding
        self._open_re = re.compile(rf'<{re.escape(entry_tag)}(?=[\s>])')
        self._close_re = re.compile(rf'</{re.escape(entry_tag)}\s*>')
        self.state = AssemblerState.OUTSIDE
        self._buffer: List[str] = []
        self.lines_read = 0
        self.fragments_emitted = 0

    def reset(self) -> None:
        """Return to OUTSIDE with an empty buffer"""
        self.state = AssemblerState.OUTSIDE
        self._buffer = []
        self.lines_read = 0
        self.fragments_emitted = 0

    def iter_fragments(self, stream: Iterable[Union[str, bytes]]) -> Iterator[str]:
        """Lazily yield complete entry fragments from a line stream

        Args:
            stream: Readable text stream (or any iterable of lines)

        Yields:
            Raw markup of each entry, from its open tag through its close tag

        Raises:
            StreamError: If reading the stream fails
            UnterminatedEntryError: If the stream ends inside an entry
        """
        try:
            lines = iter(stream)
        except Exception as e:
            raise self._stream_error(e) from e

        while True:
            try:
                line = next(lines)
                if isinstance(line, bytes):
                    line = line.decode(self.encoding)
            except StopIteration:
                break
            except Exception as e:
                # every source failure ends the search, decode errors included
                raise self._stream_error(e) from e

            self.lines_read += 1
            yield from self.feed(line)

        if self.state is AssemblerState.INSIDE:
            partial = ''.join(self._buffer)
            self._buffer = []
            raise UnterminatedEntryError(
                f"stream ended inside an unterminated <{self.entry_tag}>",
                line=partial.count('\n') + 1,
                uid=find_uid(partial)
            )

        logger.debug(
            "Stream exhausted: lines=%d fragments=%d", self.lines_read, self.fragments_emitted
        )

    def _stream_error(self, error: Exception) -> StreamError:
        self._buffer = []
        return StreamError(
            f"Failed reading SDN stream after {self.lines_read} lines: {error}",
            lines_read=self.lines_read
        )

    def iter_chunked_fragments(self, chunks: Iterable[str]) -> Iterator[str]:
        """Same as iter_fragments for streams read in arbitrary chunks"""
        return self.iter_fragments(iter_lines(chunks))

    def feed(self, line: str) -> List[str]:
        """Advance the state machine over one line

        Returns:
            Fragments completed by this line (usually zero or one)
        """
        completed: List[str] = []
        pos = 0
        while pos <= len(line):
            if self.state is AssemblerState.OUTSIDE:
                opened = self._open_re.search(line, pos)
                if opened is None:
                    stray = self._close_re.search(line, pos)
                    if stray is not None:
                        logger.debug("Ignoring close tag outside an entry at line %d", self.lines_read)
                    break
                self.state = AssemblerState.INSIDE
                pos = opened.start()
                continue

            closed = self._close_re.search(line, pos)
            if closed is None:
                self._buffer.append(line[pos:])
                break

            self._buffer.append(line[pos:closed.end()])
            completed.append(''.join(self._buffer))
            self._buffer = []
            self.state = AssemblerState.OUTSIDE
            self.fragments_emitted += 1
            pos = closed.end()

        return completed


def iter_fragments(stream: Iterable[Union[str, bytes]], entry_tag: str = DEFAULT_ENTRY_TAG) -> Iterator[str]:
    """Yield entry fragments from a stream using a fresh assembler"""
    return EntryAssembler(entry_tag).iter_fragments(stream)
