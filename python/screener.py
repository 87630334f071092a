"""
SDN Individual Screener
Streams the SDN list and returns the individuals matching a customer record

Pipeline per search: entry assembler -> entry normalizer -> matcher.
Every search is a single linear pass over a freshly opened stream; nothing
is cached or indexed between calls.

SECURITY: Query input is validated and fragments are parsed with a parser
that refuses DTDs, entities and network access.
"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, TextIO, Tuple, Union

from config_manager import get_config, configure_logging, ConfigManager, ConfigurationError
from entry_assembler import EntryAssembler
from entry_normalizer import SdnRecord, parse_entry
from matcher import Query, MatchRule, QUERY_FIELDS, match_rule
from search_errors import SearchError, StreamError
from xml_utils import sanitize_for_logging

logger = logging.getLogger(__name__)

QueryInput = Union[Query, Mapping[str, Any]]


class InputValidationError(ValueError):
    """Raised when query validation fails

    Attributes:
        field: The field that failed validation
        code: Error code for programmatic handling
        message: Human-readable error message
        suggestion: Optional suggestion for fixing the error
    """
    def __init__(self, message: str, field: str = "unknown", code: str = "VALIDATION_ERROR", suggestion: str = ""):
        self.field = field
        self.code = code
        self.suggestion = suggestion
        super().__init__(message)


def validate_query(data: Mapping[str, Any], config: Optional[ConfigManager] = None) -> None:
    """Validate caller-supplied query fields

    Unknown keys are ignored, None means absent.

    Raises:
        InputValidationError: If a known field is not a string, too long,
            or contains blocked characters
    """
    if config is None:
        config = get_config()

    iv_config = config.input_validation
    limits = {
        'id': iv_config.document_max_length,
        'id_type': iv_config.document_max_length,
        'country': iv_config.country_max_length,
        'firstName': iv_config.name_max_length,
        'lastName': iv_config.name_max_length,
    }

    for name in QUERY_FIELDS:
        value = data.get(name)
        if value is None:
            continue

        if not isinstance(value, str):
            raise InputValidationError(
                f"Field '{name}' must be a string, got {type(value).__name__}",
                field=name,
                code="INVALID_TYPE",
                suggestion="Send every query field as text"
            )

        if len(value) > limits[name]:
            raise InputValidationError(
                f"Field '{name}' too long ({len(value)} chars, maximum {limits[name]})",
                field=name,
                code="FIELD_TOO_LONG",
                suggestion=f"Shorten '{name}' to {limits[name]} characters or less"
            )

        found_blocked = [c for c in value if c in iv_config.blocked_characters]
        if found_blocked:
            logger.warning(
                "SECURITY: Blocked characters detected in %s input: %s",
                name, sanitize_for_logging(value)
            )
            raise InputValidationError(
                f"Field '{name}' contains blocked characters: {found_blocked}",
                field=name,
                code="BLOCKED_CHARACTERS",
                suggestion="Remove special characters like < > { } [ ] | \\ ; ` $"
            )


def _as_query(query: QueryInput) -> Query:
    return query if isinstance(query, Query) else Query.from_mapping(query)


def iter_matches(
    stream: Iterable[str],
    query: QueryInput,
    entry_tag: str = "sdnEntry"
) -> Iterator[Tuple[SdnRecord, MatchRule]]:
    """Lazily yield (record, rule) for each matching individual, in document order

    Raises:
        StreamError: If the stream fails
        FragmentParseError: If an entry is malformed
    """
    query = _as_query(query)
    assembler = EntryAssembler(entry_tag)

    for fragment in assembler.iter_fragments(stream):
        record = parse_entry(fragment)
        if record is None:
            continue
        rule = match_rule(record, query)
        if rule is not None:
            logger.debug("Match: uid=%s rule=%s", record.uid, rule.value)
            yield record, rule


def search(stream: Iterable[str], query: QueryInput, entry_tag: str = "sdnEntry") -> List[SdnRecord]:
    """Search one SDN stream for individuals matching the query

    Args:
        stream: Readable text stream of the decompressed SDN document
        query: Query or mapping with optional id, id_type, country,
            firstName, lastName

    Returns:
        Matching records in document order (empty when nothing matches)

    Raises:
        StreamError: If the stream fails; no partial result is returned
        FragmentParseError: If any entry is malformed, even after earlier matches
    """
    query = _as_query(query)
    if query.is_empty:
        logger.info("Query has no usable field, nothing can match")

    start_time = time.time()
    results = [record for record, _ in iter_matches(stream, query, entry_tag)]

    logger.info(
        "Search finished: hits=%d elapsed_ms=%d",
        len(results), int((time.time() - start_time) * 1000)
    )
    return results


def open_document(path: Union[str, Path], encoding: str = "utf-8") -> TextIO:
    """Open a local SDN document for one search

    Raises:
        StreamError: If the file cannot be opened
    """
    path = Path(path)
    try:
        return open(path, 'r', encoding=encoding)
    except OSError as e:
        raise StreamError(f"Cannot open SDN document {path}: {e}") from e


def search_file(
    path: Union[str, Path],
    query: QueryInput,
    encoding: str = "utf-8",
    entry_tag: str = "sdnEntry"
) -> List[SdnRecord]:
    """Open a local SDN document and search it

    Raises:
        StreamError: If the file cannot be opened or read
        FragmentParseError: If any entry is malformed
    """
    with open_document(path, encoding) as f:
        return search(f, query, entry_tag)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sdn-search",
        description="Search the OFAC SDN list for matching individuals"
    )
    parser.add_argument("--file", help="Path to sdn.xml (default: from config)")
    parser.add_argument("--config", help="Path to config.yaml")
    parser.add_argument("--id", dest="id", help="Identity document number")
    parser.add_argument("--id-type", dest="id_type", help="Identity document type (informational)")
    parser.add_argument("--country", help="Identity document issuing country")
    parser.add_argument("--first-name", dest="firstName", help="First name")
    parser.add_argument("--last-name", dest="lastName", help="Last name")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line entry point; prints matching records as JSON"""
    args = build_parser().parse_args(argv)

    try:
        config = ConfigManager(args.config) if args.config else get_config()
    except ConfigurationError as e:
        sys.stderr.write(f"error: {e}\n")
        return 2
    configure_logging(config)

    query: Dict[str, Any] = {name: getattr(args, name) for name in QUERY_FIELDS}
    path = Path(args.file) if args.file else config.xml_path

    try:
        validate_query(query, config)
        records = search_file(path, query, config.search.encoding, config.search.entry_tag)
    except InputValidationError as e:
        sys.stderr.write(f"error: {e}\n")
        return 2
    except SearchError as e:
        logger.error("Search failed: %s", sanitize_for_logging(str(e)))
        sys.stderr.write(f"error: {e}\n")
        return 2

    json.dump([r.to_dict() for r in records], sys.stdout, indent=2, ensure_ascii=False)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
