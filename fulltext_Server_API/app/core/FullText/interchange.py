# interchange.py
# Description: <fulltext> element import/export for full-text item data
#
# Imports
import re
import xml.etree.ElementTree as ET
from typing import Callable, Dict, Optional
#
# Third-Party Libraries
import defusedxml.ElementTree as SafeET
from loguru import logger
#
# Local Imports
from fulltext_Server_API.app.core.FullText.exceptions import InvalidInputError
from fulltext_Server_API.app.core.FullText.models import (
    STATS_COLUMNS,
    STATS_FIELDS,
    FullTextItemData,
    FullTextRecord,
    Item,
)
from fulltext_Server_API.app.core.FullText.sync_coordinator import SyncCoordinator
#
########################################################################################################################
#
# Functions:

FULLTEXT_ELEMENT = "fulltext"

# Characters XML 1.0 does not allow in a document, even as character references
_XML_INVALID_CHARS = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")


def parse_fulltext_xml(xml_text: str) -> ET.Element:
    """Parses untrusted XML text into an element, refusing entity-expansion tricks."""
    return SafeET.fromstring(xml_text)


def fulltext_xml_to_string(element: ET.Element) -> str:
    # ElementTree writes carriage returns in text raw, and parsers turn them into newlines
    return ET.tostring(element, encoding="unicode").replace("\r", "&#13;")


def to_xml_text(content: str) -> str:
    """
    Makes extracted text storable in an XML 1.0 document. Form feeds (page breaks in PDF text)
    become newlines and other control characters XML forbids are dropped, so the rendering is
    lossy for those characters only.
    """
    return _XML_INVALID_CHARS.sub(lambda m: "\n" if m.group() == "\x0c" else "", content)


def item_data_to_xml(data: FullTextItemData, empty: bool = False) -> ET.Element:
    """
    Renders item data as a ``<fulltext>`` element.

    The content is passed through ``to_xml_text`` first.

    Args:
        data: Full-text data of one item.
        empty: If True, omit the content and keep only the attributes.
    """
    element = ET.Element(FULLTEXT_ELEMENT)
    element.set('libraryID', str(data.library_id))
    element.set('key', data.key)
    for wire_name, column in zip(STATS_FIELDS, STATS_COLUMNS):
        element.set(wire_name, str(getattr(data, column) or 0))
    element.set('version', str(data.version))
    if not empty:
        element.text = to_xml_text(data.content)
    return element


def xml_to_item_data(element: ET.Element) -> FullTextItemData:
    """Reads a ``<fulltext>`` element back into item data. Missing stats default to 0."""
    values = {
        'libraryID': _int_attribute(element, 'libraryID', operation="xml_to_item_data"),
        'key': _key_attribute(element, operation="xml_to_item_data"),
        'content': element.text or "",
        'version': _int_attribute(element, 'version', default=0, operation="xml_to_item_data"),
    }
    values.update(_stats_attributes(element, operation="xml_to_item_data"))
    return FullTextItemData(**values)


def _int_attribute(element: ET.Element, name: str, default: Optional[int] = None, operation: str = "") -> int:
    raw = element.get(name)
    if raw is None or raw == "":
        if default is None:
            raise InvalidInputError(f"<{element.tag}> element has no {name} attribute", operation=operation,
                                    context={'attribute': name})
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise InvalidInputError(f"<{element.tag}> attribute {name} is not an integer: {raw!r}",
                                operation=operation, context={'attribute': name, 'value': raw},
                                original_error=e) from e


def _key_attribute(element: ET.Element, operation: str = "") -> str:
    key = element.get('key')
    if not key:
        raise InvalidInputError(f"<{element.tag}> element has no key attribute", operation=operation,
                                context={'attribute': 'key', 'libraryID': element.get('libraryID')})
    return key


def _stats_attributes(element: ET.Element, operation: str = "") -> Dict[str, int]:
    return {wire_name: _int_attribute(element, wire_name, default=0, operation=operation)
            for wire_name in STATS_FIELDS}


def index_from_xml(element: ET.Element, user_id: int, coordinator: SyncCoordinator,
                   get_item: Callable[[int, str], Optional[Item]],
                   user_can_edit: Callable[[int, int], bool]) -> Optional[FullTextRecord]:
    """
    Indexes full text uploaded as a ``<fulltext>`` element.

    Empty content, unknown items and libraries the user can't edit are skipped with a log
    line rather than reported as errors. A missing or non-numeric ``libraryID``, a missing
    ``key`` or a non-numeric stats attribute raises ``InvalidInputError``. The element's
    version attribute is ignored; the write gets a new library version.

    Args:
        element: The ``<fulltext>`` element.
        user_id: The uploading user.
        coordinator: Performs the write.
        get_item: ``(library_id, key) -> Item | None`` lookup.
        user_can_edit: ``(library_id, user_id) -> bool`` permission check.

    Returns:
        The committed record, or None if the element was skipped.
    """
    library_id = _int_attribute(element, 'libraryID', operation="index_from_xml")
    key = _key_attribute(element, operation="index_from_xml")
    stats = _stats_attributes(element, operation="index_from_xml")
    content = element.text or ""
    if content == "":
        logger.info(f"Skipping empty full-text content for item {library_id}/{key}")
        return None

    item = get_item(library_id, key)
    if item is None:
        logger.info(f"Item {library_id}/{key} not found during full-text indexing")
        return None

    if not user_can_edit(item.library_id, user_id):
        logger.info(f"Skipping full-text content from user {user_id} for uneditable item {library_id}/{key}")
        return None

    return coordinator.index_item(item, content, stats)

#
# End of interchange.py
#######################################################################################################################
