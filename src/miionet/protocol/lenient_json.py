"""Tolerant JSON decoding for device payloads.

Some devices pad replies with stray bytes after the JSON document or emit
empty array slots such as ``[1,,2]``. The first complete JSON value in the
text wins and whatever follows it is ignored.
"""

import json
import logging
import re
from typing import Any

from ..core.exceptions import MalformedPacket

logger = logging.getLogger(__name__)

_decoder = json.JSONDecoder()

_LEADING_COMMAS = re.compile(r"\[\s*,+")
_TRAILING_COMMAS = re.compile(r",+\s*\]")
_REPEATED_COMMAS = re.compile(r",\s*,+")


def _repair(text: str) -> str:
    text = _LEADING_COMMAS.sub("[", text)
    text = _TRAILING_COMMAS.sub("]", text)
    return _REPEATED_COMMAS.sub(",", text)


def loads(text: str) -> Any:
    """Decode the longest leading JSON value of ``text``.

    Raises:
        MalformedPacket: If no JSON value can be recovered.
    """
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    stripped = text.lstrip()
    for candidate in (stripped, _repair(stripped)):
        try:
            value, end = _decoder.raw_decode(candidate)
        except json.JSONDecodeError:
            continue
        if end < len(candidate):
            logger.debug("Ignoring %d trailing characters after JSON value", len(candidate) - end)
        return value

    raise MalformedPacket("Invalid JSON in device payload", text[:80])
