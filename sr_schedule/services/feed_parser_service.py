from typing import Optional
import logging

from lxml import etree # type: ignore

from sr_schedule.models import Channel, Program
from sr_schedule.services.fetch_types import DataQualityError, ParseError
from sr_schedule.utils.timezone import DateFormatError, parse_feed_timestamp

logger = logging.getLogger(__name__)


def parse_channels_document(content: bytes) -> list[Channel]:
    """
    Parse a channel list document

    Args:
        content: Raw XML body of the channels endpoint

    Returns:
        Channels in document order; invalid records are skipped

    Raises:
        ParseError: If XML is malformed or empty
    """
    root = _load_root(content)

    channels = []
    skipped = 0
    for element in root.iter('channel'):
        try:
            channels.append(_parse_single_channel(element))
        except DataQualityError as e:
            skipped += 1
            logger.warning(f"Skipping channel record: {e.message}")

    logger.info(f"Channel list parsed: {len(channels)} channels ({skipped} skipped)")
    return channels


def parse_programs_document(content: bytes, correction_hours: int = 1) -> list[Program]:
    """
    Parse a scheduled episodes document

    Args:
        content: Raw XML body of the scheduledepisodes endpoint
        correction_hours: Offset added to every feed timestamp

    Returns:
        Programs in document order; invalid records are skipped

    Raises:
        ParseError: If XML is malformed or empty
    """
    root = _load_root(content)

    programs = []
    skipped = 0
    for element in root.iter('scheduledepisode'):
        try:
            programs.append(_parse_single_program(element, correction_hours))
        except DataQualityError as e:
            skipped += 1
            logger.warning(f"Skipping scheduled episode: {e.message}")

    logger.debug(f"Scheduled episodes parsed: {len(programs)} programs ({skipped} skipped)")
    return programs


def _load_root(content: bytes) -> etree._Element:
    if not content or not content.strip():
        raise ParseError("Feed returned an empty document")
    try:
        parser = etree.XMLParser(resolve_entities=False, no_network=True)
        return etree.fromstring(content, parser=parser)
    except etree.XMLSyntaxError as e:
        logger.error(f"XML parsing error: {e}")
        raise ParseError(f"Malformed feed document: {e}") from e


def _parse_single_channel(element: etree._Element) -> Channel:
    """Parse single channel element"""
    channel_id = _parse_int(element.get('id'), 'channel id')
    name = (element.get('name') or '').strip()
    if not name:
        raise DataQualityError(f"channel {channel_id} has no name")

    return Channel(
        id=channel_id,
        name=name,
        image_ref=_get_text(element, 'image')
    )


def _parse_single_program(element: etree._Element, correction_hours: int) -> Program:
    """Parse single scheduledepisode element"""
    program_elem = element.find('program')
    if program_elem is None:
        raise DataQualityError("episode has no program element")
    program_id = _parse_int(program_elem.get('id'), 'program id')

    title = _get_text(element, 'title')
    if title is None:
        raise DataQualityError(f"program {program_id} has no title")

    start_str = _get_text(element, 'starttimeutc')
    end_str = _get_text(element, 'endtimeutc')
    if not start_str or not end_str:
        raise DataQualityError(f"program {program_id} is missing start or end time")

    try:
        start_time = parse_feed_timestamp(start_str, correction_hours)
        end_time = parse_feed_timestamp(end_str, correction_hours)
    except DateFormatError as e:
        raise DataQualityError(f"program {program_id}: {e}") from e

    if end_time < start_time:
        logger.debug(f"Program {program_id} ends before it starts ({start_time} > {end_time})")

    return Program(
        id=program_id,
        title=title,
        description=_get_text(element, 'description', default='') or '',
        image_ref=_get_text(element, 'imageurl'),
        start_time=start_time,
        end_time=end_time
    )


def _parse_int(value: Optional[str], field: str) -> int:
    try:
        return int((value or '').strip())
    except ValueError as e:
        raise DataQualityError(f"invalid {field}: {value!r}") from e


def _get_text(element: etree._Element, tag: str, default: Optional[str] = None) -> Optional[str]:
    """Safely extract text from XML element"""
    child = element.find(tag)
    if child is None or not child.text:
        return default
    return child.text.strip()
