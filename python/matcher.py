"""
Matcher
Decides whether a normalized SDN record satisfies a normalized query

Rules are tried in a fixed order and the first one that succeeds wins:

1. identity document: number and issuing country both equal the query's
2. primary name: first and last name equal the query's
3. alias: an alias name, completed with the entry's own names, equals the query's

Comparison is exact string equality after normalization. The document type
on the query is carried for callers but never consulted.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from entry_normalizer import SdnRecord, normalize_name, normalize_text

QUERY_FIELDS = ('id', 'id_type', 'country', 'firstName', 'lastName')


class MatchRule(Enum):
    """Rule that produced a match"""
    ID_DOCUMENT = "id_document"
    PRIMARY_NAME = "primary_name"
    ALIAS = "alias"


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value)
    return value if value.strip() else None


@dataclass(frozen=True)
class Query:
    """Normalized search criteria"""
    id: Optional[str] = None
    id_type: Optional[str] = None
    country: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> 'Query':
        """Build a query from caller data, ignoring unknown keys

        Blank values count as absent.
        """
        return cls(
            id=normalize_text(_clean(data.get('id'))),
            id_type=normalize_text(_clean(data.get('id_type'))),
            country=normalize_text(_clean(data.get('country'))),
            first_name=normalize_name(_clean(data.get('firstName'))),
            last_name=normalize_name(_clean(data.get('lastName')))
        )

    @property
    def has_document(self) -> bool:
        return self.id is not None and self.country is not None

    @property
    def has_name(self) -> bool:
        return self.first_name is not None or self.last_name is not None

    @property
    def is_empty(self) -> bool:
        """True when no rule can ever match this query"""
        return not (self.has_document or self.has_name)

    def to_dict(self):
        return {
            'id': self.id,
            'id_type': self.id_type,
            'country': self.country,
            'firstName': self.first_name,
            'lastName': self.last_name
        }


def _match_document(record: SdnRecord, query: Query) -> bool:
    if not query.has_document:
        return False
    return any(
        doc.id_number == query.id and doc.id_country == query.country
        for doc in record.ids
    )


def _match_primary_name(record: SdnRecord, query: Query) -> bool:
    if not query.has_name:
        return False
    return (
        (record.first_name or '') == (query.first_name or '')
        and (record.last_name or '') == (query.last_name or '')
    )


def _match_alias(record: SdnRecord, query: Query) -> bool:
    if not query.has_name:
        return False
    for aka in record.akas:
        first = aka.first_name or record.first_name or ''
        last = aka.last_name or record.last_name or ''
        if first == (query.first_name or '') and last == (query.last_name or ''):
            return True
    return False


RULES = (
    (MatchRule.ID_DOCUMENT, _match_document),
    (MatchRule.PRIMARY_NAME, _match_primary_name),
    (MatchRule.ALIAS, _match_alias),
)


def match_rule(record: SdnRecord, query: Query) -> Optional[MatchRule]:
    """Return the first rule the record satisfies, or None"""
    for rule, check in RULES:
        if check(record, query):
            return rule
    return None


def matches(record: SdnRecord, query: Query) -> bool:
    """True when any rule matches"""
    return match_rule(record, query) is not None
