"""
Inner message layer: the packet stream recovered from an encrypted-data packet.

A decrypted stream holds one literal data packet, optionally wrapped in
compressed data packets and surrounded by one-pass signatures and signatures.
"""

import bz2
import zlib
from dataclasses import dataclass

import structlog

from pgp_decrypt.crypto.packets import BodyReader, read_packets
from pgp_decrypt.crypto.signature import parse_signature_packet
from pgp_decrypt.exceptions import MalformedPacketError, UnsupportedAlgorithmError
from pgp_decrypt.models.crypto import CompressionAlgorithm
from pgp_decrypt.models.packets import LiteralData, OnePassSignature, Packet, PacketTag
from pgp_decrypt.models.signature import Signature

logger = structlog.get_logger(__name__)

_DEFAULT_MAX_DECOMPRESSED = 1024 * 1024 * 1024
_DEFAULT_MAX_DEPTH = 8
_IGNORED = frozenset({PacketTag.MARKER, PacketTag.PADDING})


@dataclass(frozen=True, kw_only=True)
class MessageContent:
    """
    Parsed inner message.

    Attributes:
        literal: The literal data packet.
        one_pass_signatures: One-pass signature announcements, in stream order.
        signatures: Parsed signature packets, in stream order.
        unsupported_signatures: Reasons for signature packets that could not be parsed.
    """

    literal: LiteralData
    one_pass_signatures: tuple[OnePassSignature, ...] = ()
    signatures: tuple[Signature, ...] = ()
    unsupported_signatures: tuple[str, ...] = ()

    @property
    def is_signed(self) -> bool:
        return bool(self.signatures or self.unsupported_signatures)


class _Collector:
    def __init__(self, max_decompressed_size: int, max_nesting_depth: int) -> None:
        self.max_decompressed_size = max_decompressed_size
        self.max_nesting_depth = max_nesting_depth
        self.literal: LiteralData | None = None
        self.one_pass: list[OnePassSignature] = []
        self.signatures: list[Signature] = []
        self.unsupported: list[str] = []

    def walk(self, data: bytes, depth: int) -> None:
        for packet in read_packets(data):
            self._visit(packet, depth)

    def _visit(self, packet: Packet, depth: int) -> None:
        match packet.packet_tag:
            case PacketTag.COMPRESSED_DATA:
                if depth >= self.max_nesting_depth:
                    msg = f"Compressed data nested deeper than {self.max_nesting_depth} levels"
                    raise MalformedPacketError(msg, packet_tag=packet.tag, offset=packet.offset)
                self.walk(decompress(packet, limit=self.max_decompressed_size), depth + 1)
            case PacketTag.LITERAL_DATA:
                if self.literal is not None:
                    msg = "Message contains more than one literal data packet"
                    raise MalformedPacketError(msg, packet_tag=packet.tag, offset=packet.offset)
                self.literal = parse_literal_packet(packet)
            case PacketTag.ONE_PASS_SIGNATURE:
                one_pass = parse_one_pass_signature(packet)
                if one_pass is not None:
                    self.one_pass.append(one_pass)
            case PacketTag.SIGNATURE:
                try:
                    self.signatures.append(parse_signature_packet(packet))
                except (MalformedPacketError, UnsupportedAlgorithmError) as e:
                    logger.warning("Unreadable signature packet", error=str(e))
                    self.unsupported.append(e.message)
            case tag if tag in _IGNORED:
                pass
            case None:
                logger.debug("Ignoring unknown packet in message", packet_tag=packet.tag)
            case _:
                msg = f"Unexpected {packet.name} packet in decrypted message"
                raise MalformedPacketError(msg, packet_tag=packet.tag, offset=packet.offset)


def parse_message_body(
    data: bytes,
    *,
    max_decompressed_size: int = _DEFAULT_MAX_DECOMPRESSED,
    max_nesting_depth: int = _DEFAULT_MAX_DEPTH,
) -> MessageContent:
    """
    Parse the decrypted packet stream of a message.

    Args:
        data: Plaintext packet stream from the symmetric decryptor.
        max_decompressed_size: Limit on the output of each compressed packet.
        max_nesting_depth: Limit on nested compressed packets.

    Returns:
        MessageContent with the literal data and any signatures.

    Raises:
        MalformedPacketError: If the stream is malformed, exceeds a limit, or
            holds no literal data packet.
    """
    collector = _Collector(max_decompressed_size, max_nesting_depth)
    collector.walk(data, 0)
    if collector.literal is None:
        msg = "Message contains no literal data packet"
        raise MalformedPacketError(msg, packet_tag=PacketTag.LITERAL_DATA)

    logger.debug(
        "Parsed message body",
        size=len(collector.literal.data),
        signatures=len(collector.signatures),
    )
    return MessageContent(
        literal=collector.literal,
        one_pass_signatures=tuple(collector.one_pass),
        signatures=tuple(collector.signatures),
        unsupported_signatures=tuple(collector.unsupported),
    )


def parse_literal_packet(packet: Packet) -> LiteralData:
    reader = BodyReader(packet.body, packet_tag=PacketTag.LITERAL_DATA)
    data_format = reader.read_byte()
    filename = reader.read(reader.read_byte()).decode("utf-8", errors="replace")
    timestamp = reader.read_uint32()
    return LiteralData(format=data_format, filename=filename, timestamp=timestamp, data=reader.read_rest())


def parse_one_pass_signature(packet: Packet) -> OnePassSignature | None:
    """Parse a version 3 one-pass signature; other versions are skipped."""
    reader = BodyReader(packet.body, packet_tag=PacketTag.ONE_PASS_SIGNATURE)
    version = reader.read_byte()
    if version != 3:
        logger.debug("Skipping one-pass signature", version=version)
        return None
    return OnePassSignature(
        version=version,
        signature_type=reader.read_byte(),
        hash_algorithm=reader.read_byte(),
        pubkey_algorithm=reader.read_byte(),
        key_id=reader.read(8),
        nested=reader.read_byte() == 0,
    )


def decompress(packet: Packet, *, limit: int = _DEFAULT_MAX_DECOMPRESSED) -> bytes:
    """
    Inflate a compressed data packet body.

    Raises:
        MalformedPacketError: On corrupt or truncated data, or output larger than ``limit``.
        UnsupportedAlgorithmError: For unknown compression algorithms.
    """
    reader = BodyReader(packet.body, packet_tag=PacketTag.COMPRESSED_DATA)
    algorithm_id = reader.read_byte()
    data = reader.read_rest()
    try:
        algorithm = CompressionAlgorithm(algorithm_id)
    except ValueError:
        msg = f"Unknown compression algorithm: {algorithm_id}"
        raise UnsupportedAlgorithmError(msg, algorithm=algorithm_id) from None

    match algorithm:
        case CompressionAlgorithm.ZIP:
            decompressor = zlib.decompressobj(-zlib.MAX_WBITS)
        case CompressionAlgorithm.ZLIB:
            decompressor = zlib.decompressobj()
        case CompressionAlgorithm.BZIP2:
            decompressor = bz2.BZ2Decompressor()
        case _:
            decompressor = None

    if decompressor is None:
        output, complete = data, True
    else:
        try:
            output = decompressor.decompress(data, limit + 1)
        except (zlib.error, OSError, EOFError) as e:
            msg = f"Corrupt {algorithm.name} compressed data: {e}"
            raise MalformedPacketError(msg, packet_tag=packet.tag, offset=packet.offset) from e
        complete = decompressor.eof

    if len(output) > limit:
        msg = f"Decompressed data exceeds limit of {limit} bytes"
        raise MalformedPacketError(msg, packet_tag=packet.tag, offset=packet.offset)
    if not complete:
        msg = f"Truncated {algorithm.name} compressed data"
        raise MalformedPacketError(msg, packet_tag=packet.tag, offset=packet.offset)
    return output
