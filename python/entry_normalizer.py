"""
Entry Normalizer
Parses raw sdnEntry fragments into normalized, immutable SDN records

Only individuals are kept. Every string field is lowercased; first and last
names additionally have each run of non-word characters collapsed to a single
space, so "HERRERA-BUITRAGO" and "Herrera Buitrago" compare equal.
"""

import logging
import re
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from xml_utils import parse_fragment, get_text_from_element, element_fields, local_name

logger = logging.getLogger(__name__)

INDIVIDUAL = 'Individual'

NON_WORD = re.compile(r'\W+')

# Container tag -> record attribute, for lists carried through untouched
AUXILIARY_LISTS = {
    'addressList': 'addresses',
    'dateOfBirthList': 'dates_of_birth',
    'placeOfBirthList': 'places_of_birth',
    'nationalityList': 'nationalities',
    'citizenshipList': 'citizenships',
}

AuxiliaryItem = Mapping[str, str]


def normalize_text(value: Optional[str]) -> Optional[str]:
    """Lowercase a field value; None stays None"""
    if value is None:
        return None
    return value.lower()


def normalize_name(value: Optional[str]) -> Optional[str]:
    """Lowercase and replace each run of non-word characters with one space"""
    if value is None:
        return None
    return NON_WORD.sub(' ', value.lower())


def _freeze(fields: Dict[str, str]) -> AuxiliaryItem:
    return MappingProxyType({k: normalize_text(v) for k, v in fields.items()})


@dataclass(frozen=True)
class IdDocument:
    """Identity document listed on an entry"""
    uid: Optional[str] = None
    id_type: Optional[str] = None
    id_number: Optional[str] = None
    id_country: Optional[str] = None
    issue_date: Optional[str] = None
    expiration_date: Optional[str] = None

    def normalized(self) -> 'IdDocument':
        return IdDocument(
            uid=normalize_text(self.uid),
            id_type=normalize_text(self.id_type),
            id_number=normalize_text(self.id_number),
            id_country=normalize_text(self.id_country),
            issue_date=normalize_text(self.issue_date),
            expiration_date=normalize_text(self.expiration_date)
        )

    def to_dict(self) -> Dict[str, str]:
        return _compact({
            'uid': self.uid,
            'idType': self.id_type,
            'idNumber': self.id_number,
            'idCountry': self.id_country,
            'issueDate': self.issue_date,
            'expirationDate': self.expiration_date
        })


@dataclass(frozen=True)
class Alias:
    """Alternate name (a.k.a., f.k.a., n.k.a.) of an entry

    Missing first/last names fall back to the entry's own names when matching.
    """
    uid: Optional[str] = None
    type: Optional[str] = None
    category: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    def normalized(self) -> 'Alias':
        return Alias(
            uid=normalize_text(self.uid),
            type=normalize_text(self.type),
            category=normalize_text(self.category),
            first_name=normalize_name(self.first_name),
            last_name=normalize_name(self.last_name)
        )

    def to_dict(self) -> Dict[str, str]:
        return _compact({
            'uid': self.uid,
            'type': self.type,
            'category': self.category,
            'firstName': self.first_name,
            'lastName': self.last_name
        })


@dataclass(frozen=True)
class SdnRecord:
    """Normalized sanctioned individual"""
    uid: Optional[str]
    sdn_type: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    title: Optional[str] = None
    remarks: Optional[str] = None
    programs: Tuple[str, ...] = ()
    ids: Tuple[IdDocument, ...] = ()
    akas: Tuple[Alias, ...] = ()
    addresses: Tuple[AuxiliaryItem, ...] = ()
    dates_of_birth: Tuple[AuxiliaryItem, ...] = ()
    places_of_birth: Tuple[AuxiliaryItem, ...] = ()
    nationalities: Tuple[AuxiliaryItem, ...] = ()
    citizenships: Tuple[AuxiliaryItem, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        """SDN-shaped mapping with the list's own camelCase keys"""
        data = _compact({
            'uid': self.uid,
            'firstName': self.first_name,
            'lastName': self.last_name,
            'title': self.title,
            'sdnType': self.sdn_type,
            'remarks': self.remarks,
        })
        data['programList'] = list(self.programs)
        data['idList'] = [doc.to_dict() for doc in self.ids]
        data['akaList'] = [aka.to_dict() for aka in self.akas]
        for container, attr in AUXILIARY_LISTS.items():
            data[container] = [dict(item) for item in getattr(self, attr)]
        return data


def _compact(values: Dict[str, Optional[str]]) -> Dict[str, str]:
    return {k: v for k, v in values.items() if v is not None}


def _children(root: Any, container: str) -> List[Any]:
    """Child elements of a list container: absent, single and many all become a list"""
    elem = root.find(container)
    if elem is None:
        return []
    return [child for child in elem if local_name(child)]


def normalize_record(record: SdnRecord) -> SdnRecord:
    """Apply string normalization to every field of a record

    Normalizing an already normalized record returns an equal record.
    """
    aux = {
        attr: tuple(_freeze(dict(item)) for item in getattr(record, attr))
        for attr in AUXILIARY_LISTS.values()
    }
    return replace(
        record,
        uid=normalize_text(record.uid),
        sdn_type=normalize_text(record.sdn_type),
        first_name=normalize_name(record.first_name),
        last_name=normalize_name(record.last_name),
        title=normalize_text(record.title),
        remarks=normalize_text(record.remarks),
        programs=tuple(normalize_text(p) for p in record.programs),
        ids=tuple(doc.normalized() for doc in record.ids),
        akas=tuple(aka.normalized() for aka in record.akas),
        **aux
    )


def parse_entry(fragment: str) -> Optional[SdnRecord]:
    """Parse one entry fragment into a normalized record

    Args:
        fragment: Raw markup of a single sdnEntry

    Returns:
        Normalized SdnRecord, or None when the entry is not an individual

    Raises:
        FragmentParseError: If the fragment is malformed
    """
    root = parse_fragment(fragment)

    sdn_type = get_text_from_element(root, 'sdnType')
    if sdn_type != INDIVIDUAL:
        logger.debug(
            "Skipping entry uid=%s sdnType=%s", get_text_from_element(root, 'uid'), sdn_type
        )
        return None

    ids = tuple(
        IdDocument(
            uid=get_text_from_element(elem, 'uid'),
            id_type=get_text_from_element(elem, 'idType'),
            id_number=get_text_from_element(elem, 'idNumber'),
            id_country=get_text_from_element(elem, 'idCountry'),
            issue_date=get_text_from_element(elem, 'issueDate'),
            expiration_date=get_text_from_element(elem, 'expirationDate')
        )
        for elem in _children(root, 'idList')
    )

    akas = tuple(
        Alias(
            uid=get_text_from_element(elem, 'uid'),
            type=get_text_from_element(elem, 'type'),
            category=get_text_from_element(elem, 'category'),
            first_name=get_text_from_element(elem, 'firstName'),
            last_name=get_text_from_element(elem, 'lastName')
        )
        for elem in _children(root, 'akaList')
    )

    programs = tuple(
        elem.text.strip() for elem in _children(root, 'programList')
        if elem.text and elem.text.strip()
    )

    aux = {
        attr: tuple(MappingProxyType(element_fields(elem)) for elem in _children(root, container))
        for container, attr in AUXILIARY_LISTS.items()
    }

    record = SdnRecord(
        uid=get_text_from_element(root, 'uid'),
        sdn_type=sdn_type,
        first_name=get_text_from_element(root, 'firstName'),
        last_name=get_text_from_element(root, 'lastName'),
        title=get_text_from_element(root, 'title'),
        remarks=get_text_from_element(root, 'remarks'),
        programs=programs,
        ids=ids,
        akas=akas,
        **aux
    )
    return normalize_record(record)
