"""
ASCII armor adapter.

Armor decoding is delegated to pgpy's Armorable helpers; binary input passes
through untouched so callers can hand over either form.
"""

import warnings

import structlog
from pgpy.errors import PGPError
from pgpy.types import Armorable

from pgp_decrypt.exceptions import ArmorError

logger = structlog.get_logger(__name__)


def is_armored(data: bytes | str) -> bool:
    """Check whether ``data`` looks like an ASCII-armored block."""
    if isinstance(data, str):
        return "-----BEGIN PGP " in data
    return Armorable.is_ascii(data) and b"-----BEGIN PGP " in data


def unarmor(data: bytes | bytearray | str) -> bytes:
    """
    Return the binary packet stream carried by ``data``.

    Args:
        data: Armored text (str or ASCII bytes) or an already binary stream.

    Returns:
        Binary OpenPGP bytes.

    Raises:
        ArmorError: If the armor framing, base64 body or CRC-24 is invalid.
    """
    if isinstance(data, (bytes, bytearray)) and not is_armored(bytes(data)):
        return bytes(data)

    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            parts = Armorable.ascii_unarmor(data)
    except (ValueError, PGPError) as e:
        msg = f"Invalid ASCII armor: {e}"
        raise ArmorError(msg) from e

    body = bytes(parts["body"])
    crc = parts.get("crc")
    if isinstance(crc, int) and Armorable.crc24(bytearray(body)) != crc:
        msg = "ASCII armor CRC-24 mismatch"
        raise ArmorError(msg)

    logger.debug("Decoded ASCII armor", kind=parts.get("magic"), size=len(body))
    return body
