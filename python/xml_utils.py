"""
Shared XML utilities for the SDN search pipeline

Fragment parsing, element helpers and log sanitization used by the
normalizer, the downloader and the API.

SECURITY: All XML parsing uses secure defaults to prevent XXE attacks.
"""

import logging
import re
from typing import Optional, Any, Dict, Tuple

from lxml import etree

from search_errors import FragmentParseError

logger = logging.getLogger(__name__)

UID_PATTERN = re.compile(r'<uid>\s*([^<]+?)\s*</uid>')

# lxml appends ", line L, column C" to the libxml message
POSITION_SUFFIX = re.compile(r',\s*line \d+,\s*column \d+\s*$')


def get_secure_parser() -> etree.XMLParser:
    """Get a secure XML parser that prevents XXE attacks

    Returns:
        lxml parser with DTD loading, entity resolution and network access disabled
    """
    return etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        dtd_validation=False,
        load_dtd=False,
        huge_tree=False,
        remove_blank_text=True
    )


def parse_fragment(fragment: str) -> Any:
    """Parse one isolated entry fragment into an element

    The fragment carries no document or namespace context, so tags come back
    unqualified.

    Args:
        fragment: Raw markup of a single entry

    Returns:
        Root element of the fragment

    Raises:
        FragmentParseError: If the markup is malformed
    """
    try:
        return etree.fromstring(fragment.encode('utf-8'), get_secure_parser())
    except etree.XMLSyntaxError as e:
        line, column = _error_position(e)
        reason = POSITION_SUFFIX.sub('', e.msg or str(e))
        uid = find_uid(fragment)
        logger.error(
            "Malformed entry fragment: uid=%s reason=%s line=%s column=%s",
            uid, sanitize_for_logging(reason), line, column
        )
        raise FragmentParseError(reason, line=line, column=column, uid=uid) from e


def _error_position(error: etree.XMLSyntaxError) -> Tuple[Optional[int], Optional[int]]:
    """Line and 1-based column of a syntax error, when lxml reports them

    lxml stores offset as column - 1; position carries libxml's own column.
    """
    line, column = error.position
    return line or None, column or None


def find_uid(fragment: str) -> Optional[str]:
    """Recover the entry uid from raw markup without parsing it"""
    match = UID_PATTERN.search(fragment)
    return match.group(1) if match else None


def local_name(elem: Any) -> str:
    """Tag name without any namespace qualifier"""
    tag = elem.tag
    if not isinstance(tag, str):
        return ''
    return tag.rsplit('}', 1)[-1]


def get_text_from_element(elem: Any, path: str) -> Optional[str]:
    """Safely get text content from an XML element

    Args:
        elem: Parent XML element
        path: XPath-style path to child element

    Returns:
        Stripped text content or None if element not found or empty
    """
    child = elem.find(path)
    if child is not None and child.text and child.text.strip():
        return child.text.strip()
    return None


def element_fields(elem: Any) -> Dict[str, str]:
    """Flatten the text-bearing children of an element into a dict

    Children without text are skipped, comments and processing instructions
    are ignored. Document order is preserved.
    """
    fields: Dict[str, str] = {}
    for child in elem:
        name = local_name(child)
        if not name:
            continue
        if child.text and child.text.strip():
            fields[name] = child.text.strip()
    return fields


def sanitize_for_logging(text: str) -> str:
    """Sanitize user input for safe logging, preventing log injection

    Removes newlines, carriage returns, and other control characters
    that could be used to inject fake log entries.

    Args:
        text: User input text

    Returns:
        Sanitized text safe for logging
    """
    if not text:
        return ''
    sanitized = re.sub(r'[\r\n\x00-\x1f\x7f-\x9f]', ' ', str(text))
    sanitized = re.sub(r'\s+', ' ', sanitized).strip()
    return sanitized[:500] if len(sanitized) > 500 else sanitized
