"""
Packet-level domain models.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import IntEnum


class PacketTag(IntEnum):
    """OpenPGP packet type identifiers."""

    PKESK = 1
    SIGNATURE = 2
    SKESK = 3
    ONE_PASS_SIGNATURE = 4
    SECRET_KEY = 5
    PUBLIC_KEY = 6
    SECRET_SUBKEY = 7
    COMPRESSED_DATA = 8
    SED = 9
    MARKER = 10
    LITERAL_DATA = 11
    TRUST = 12
    USER_ID = 13
    PUBLIC_SUBKEY = 14
    USER_ATTRIBUTE = 17
    SEIPD = 18
    MDC = 19
    AEAD_ENCRYPTED = 20
    PADDING = 21


@dataclass(frozen=True, kw_only=True)
class Packet:
    """
    One parsed OpenPGP packet.

    Attributes:
        tag: Raw packet tag; may be a value outside PacketTag.
        body: Packet body with partial-length chunks already joined.
        offset: Position of the packet header in the source buffer.
        header_length: Size of the header (first header chunk for partial bodies).
        new_format: Whether the header used the new (RFC 4880 §4.2.2) encoding.
        partial: Whether the body was delivered in partial-length chunks.
    """

    tag: int
    body: bytes
    offset: int = 0
    header_length: int = 0
    new_format: bool = True
    partial: bool = False

    @property
    def length(self) -> int:
        return len(self.body)

    @property
    def packet_tag(self) -> PacketTag | None:
        try:
            return PacketTag(self.tag)
        except ValueError:
            return None

    @property
    def name(self) -> str:
        packet_tag = self.packet_tag
        return packet_tag.name if packet_tag is not None else f"UNKNOWN_{self.tag}"


class LiteralFormat(IntEnum):
    """Literal data format octet."""

    BINARY = ord("b")
    TEXT = ord("t")
    UTF8 = ord("u")
    MIME = ord("m")
    LOCAL = ord("l")


@dataclass(frozen=True, kw_only=True)
class LiteralData:
    """Decoded Literal Data packet: content plus the metadata that travels with it."""

    format: int
    filename: str
    timestamp: int
    data: bytes

    @property
    def modification_time(self) -> datetime | None:
        if not self.timestamp:
            return None
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc)

    @property
    def is_text(self) -> bool:
        return self.format in (LiteralFormat.TEXT, LiteralFormat.UTF8, LiteralFormat.MIME)


@dataclass(frozen=True, kw_only=True)
class OnePassSignature:
    """One-Pass Signature packet announcing a signature that trails the literal data."""

    version: int
    signature_type: int
    hash_algorithm: int
    pubkey_algorithm: int
    key_id: bytes
    nested: bool
