"""Decoder for the calendar backend's wrapped callback responses."""
import json
import logging
from typing import Iterable

from processor.models import CalendarPayload

logger = logging.getLogger(__name__)

ENVELOPE_MARKER = '[['


class DecodeError(ValueError):
    """Raised when a response frame does not carry the calendar payload."""


def decode(raw_text: str) -> CalendarPayload:
    """
    Unwrap and parse one callback response body.

    The backend prefixes its reply with an anti-hijacking guard and wraps
    the real document as a JSON-encoded string inside an array envelope::

        )]}'

        [["op.exec",[0,"{\\"events\\": [...]}"]],["di",42]]

    The payload string sits at ``outer[0][1][1]``.

    Args:
        raw_text: Raw response body

    Returns:
        CalendarPayload with the decoded event records

    Raises:
        DecodeError: If the frame is not a well-formed payload carrier
    """
    if not raw_text:
        raise DecodeError('Empty response body')

    start_idx = raw_text.find(ENVELOPE_MARKER)
    if start_idx < 0:
        raise DecodeError('Envelope marker not found')

    try:
        outer = json.loads(raw_text[start_idx:])
    except ValueError as e:
        raise DecodeError(f'Envelope is not valid JSON: {e}') from e

    try:
        inner_str = outer[0][1][1]
    except (IndexError, KeyError, TypeError) as e:
        raise DecodeError(f'Unexpected envelope shape: {e}') from e

    if not isinstance(inner_str, str) or not inner_str:
        raise DecodeError('Envelope does not contain a payload string')

    try:
        document = json.loads(inner_str)
    except ValueError as e:
        raise DecodeError(f'Payload is not valid JSON: {e}') from e

    if not isinstance(document, dict):
        raise DecodeError('Payload is not a JSON object')

    if 'events' not in document:
        raise DecodeError('Payload has no events field')

    events = document['events']
    if not isinstance(events, list):
        raise DecodeError('Payload events field is not a list')

    return CalendarPayload(events=events, raw=document)


def decode_first(frames: Iterable[str]) -> CalendarPayload:
    """
    Decode the first frame that carries the payload.

    Args:
        frames: Response bodies in the order they were observed

    Returns:
        CalendarPayload from the first decodable frame

    Raises:
        DecodeError: If no frame decodes
    """
    attempted = 0
    for frame in frames:
        attempted += 1
        try:
            payload = decode(frame)
        except DecodeError as e:
            logger.debug(f"Skipping frame {attempted}: {e}")
            continue
        logger.info(
            f"Decoded calendar payload from frame {attempted} "
            f"({len(payload.events)} events)"
        )
        return payload

    raise DecodeError(f'No decodable payload among {attempted} frames')
