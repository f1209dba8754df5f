"""
Property list decoding.

Packages ship Info.plist either in the compact binary encoding or as XML,
with no way to tell up front. Decoding tries each strategy in order and
the first one that yields a dictionary wins.
"""

import logging
import plistlib
from enum import Enum
from typing import Any, Callable

from manifest_generator.core.exceptions import DecodeFailureError

logger = logging.getLogger(__name__)


class DecodeStrategy(Enum):
    """Ways of turning raw Info.plist bytes into a dictionary."""

    BINARY_FIRST = "binary_first"
    TEXT_FALLBACK = "text_fallback"


def _decode_binary(data: bytes) -> Any:
    """Parse binary plist, convert it to XML and parse the XML form."""
    parsed = plistlib.loads(data, fmt=plistlib.FMT_BINARY)
    xml = plistlib.dumps(parsed, fmt=plistlib.FMT_XML)
    return plistlib.loads(xml, fmt=plistlib.FMT_XML)


def _decode_text(data: bytes) -> Any:
    return plistlib.loads(data, fmt=plistlib.FMT_XML)


_DECODERS: dict[DecodeStrategy, Callable[[bytes], Any]] = {
    DecodeStrategy.BINARY_FIRST: _decode_binary,
    DecodeStrategy.TEXT_FALLBACK: _decode_text,
}

DEFAULT_ORDER = (DecodeStrategy.BINARY_FIRST, DecodeStrategy.TEXT_FALLBACK)


def decode_plist(
    data: bytes,
    order: tuple[DecodeStrategy, ...] = DEFAULT_ORDER,
) -> tuple[dict[str, Any], DecodeStrategy]:
    """
    Decode property list bytes.

    Args:
        data: Raw Info.plist contents
        order: Strategies to attempt, in order

    Returns:
        Tuple of the decoded dictionary and the strategy that succeeded

    Raises:
        DecodeFailureError: If no strategy produced a dictionary
    """
    attempts: list[str] = []
    for strategy in order:
        try:
            result = _DECODERS[strategy](data)
        except Exception as e:
            # plistlib raises InvalidFileException, ValueError, ExpatError
            # and friends depending on how the bytes are malformed
            logger.debug(f"Plist strategy {strategy.value} failed: {e}")
            attempts.append(f"{strategy.value}: {e}")
            continue

        if not isinstance(result, dict):
            attempts.append(f"{strategy.value}: root is {type(result).__name__}, not dict")
            continue

        return result, strategy

    raise DecodeFailureError(attempts=attempts)
