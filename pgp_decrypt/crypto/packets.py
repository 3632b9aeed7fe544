"""
OpenPGP packet stream reader.

Splits a binary buffer into Packet values. Both header encodings are supported:
old format (one, two, four octet and indeterminate lengths) and new format (one,
two, five octet and partial body lengths).
"""

from collections.abc import Iterator

from pgp_decrypt.exceptions import MalformedPacketError
from pgp_decrypt.models.packets import Packet, PacketTag

# Tags allowed to use partial body lengths (RFC 4880 §4.2.2.4)
_PARTIAL_CAPABLE = frozenset(
    {
        PacketTag.COMPRESSED_DATA,
        PacketTag.SED,
        PacketTag.LITERAL_DATA,
        PacketTag.SEIPD,
        PacketTag.AEAD_ENCRYPTED,
    }
)
_OLD_FORMAT_LENGTH_SIZES = (1, 2, 4)


class PacketReader:
    """
    Lazy, finite packet sequence over an in-memory buffer.

    Each iteration restarts from the first packet, so the same reader can be
    walked more than once.

    Example:
        for packet in PacketReader(data):
            print(packet.name, packet.length)
    """

    def __init__(self, data: bytes | bytearray | memoryview) -> None:
        self._data = bytes(data)

    def __iter__(self) -> Iterator[Packet]:
        offset = 0
        while offset < len(self._data):
            packet, offset = read_packet(self._data, offset)
            yield packet

    @property
    def size(self) -> int:
        """Length of the underlying buffer in bytes."""
        return len(self._data)

    def packets(self) -> list[Packet]:
        """Parse the whole buffer eagerly."""
        return list(self)


def read_packets(data: bytes | bytearray | memoryview) -> list[Packet]:
    """
    Parse every packet in ``data``.

    Raises:
        MalformedPacketError: If a header is invalid or a declared length
            exceeds the remaining bytes.
    """
    return PacketReader(data).packets()


def read_packet(data: bytes, offset: int) -> tuple[Packet, int]:
    """
    Parse one packet starting at ``offset``.

    Returns:
        Tuple of (packet, offset of the next packet).
    """
    tag, new_format = parse_packet_tag(data[offset], offset=offset)
    if tag == 0:
        msg = "Reserved packet tag 0"
        raise MalformedPacketError(msg, packet_tag=tag, offset=offset)

    if new_format:
        return _read_new_format(data, offset, tag)
    return _read_old_format(data, offset, tag)


def parse_packet_tag(first_byte: int, *, offset: int | None = None) -> tuple[int, bool]:
    """
    Decode the first header octet.

    Returns:
        Tuple of (packet tag, is new format).
    """
    if (first_byte & 0xC0) == 0xC0:
        # New format: 11xxxxxx
        return first_byte & 0x3F, True
    if (first_byte & 0x80) == 0x80:
        # Old format: 10xxxxxx
        return (first_byte & 0x3C) >> 2, False
    msg = f"Invalid packet header: 0x{first_byte:02x}"
    raise MalformedPacketError(msg, offset=offset)


def _read_new_format(data: bytes, offset: int, tag: int) -> tuple[Packet, int]:
    pos = offset + 1
    chunks: list[bytes] = []
    header_length = 0
    partial = False

    while True:
        length, length_size, is_partial = _parse_new_format_length(data, pos, tag)
        if not header_length:
            header_length = 1 + length_size
        pos += length_size
        if is_partial and tag not in _PARTIAL_CAPABLE:
            msg = "Partial body length on a packet type that does not allow it"
            raise MalformedPacketError(msg, packet_tag=tag, offset=offset)
        _ensure_available(data, pos, length, tag, offset)
        chunks.append(data[pos : pos + length])
        pos += length
        if not is_partial:
            break
        partial = True

    packet = Packet(
        tag=tag,
        body=b"".join(chunks),
        offset=offset,
        header_length=header_length,
        new_format=True,
        partial=partial,
    )
    return packet, pos


def _parse_new_format_length(data: bytes, pos: int, tag: int) -> tuple[int, int, bool]:
    if pos >= len(data):
        msg = "Missing length byte"
        raise MalformedPacketError(msg, packet_tag=tag, offset=pos)

    first_byte = data[pos]

    if first_byte < 192:
        return first_byte, 1, False

    if first_byte < 224:
        if pos + 2 > len(data):
            msg = "Incomplete two-byte length"
            raise MalformedPacketError(msg, packet_tag=tag, offset=pos)
        length = ((first_byte - 192) << 8) + data[pos + 1] + 192
        return length, 2, False

    if first_byte == 255:
        if pos + 5 > len(data):
            msg = "Incomplete five-byte length"
            raise MalformedPacketError(msg, packet_tag=tag, offset=pos)
        return int.from_bytes(data[pos + 1 : pos + 5], "big"), 5, False

    return 1 << (first_byte & 0x1F), 1, True


def _read_old_format(data: bytes, offset: int, tag: int) -> tuple[Packet, int]:
    length_type = data[offset] & 0x03
    pos = offset + 1

    if length_type == 3:
        # Indeterminate: body runs to the end of the input
        length = len(data) - pos
        length_size = 0
    else:
        length_size = _OLD_FORMAT_LENGTH_SIZES[length_type]
        if pos + length_size > len(data):
            msg = f"Incomplete {length_size}-byte length"
            raise MalformedPacketError(msg, packet_tag=tag, offset=offset)
        length = int.from_bytes(data[pos : pos + length_size], "big")
        pos += length_size

    _ensure_available(data, pos, length, tag, offset)
    packet = Packet(
        tag=tag,
        body=data[pos : pos + length],
        offset=offset,
        header_length=1 + length_size,
        new_format=False,
    )
    return packet, pos + length


def _ensure_available(data: bytes, pos: int, length: int, tag: int, offset: int) -> None:
    remaining = len(data) - pos
    if length <= remaining:
        return
    msg = f"Declared length {length} exceeds remaining {remaining} bytes"
    raise MalformedPacketError(msg, packet_tag=tag, offset=offset)


def encode_packet_header(tag: int, length: int) -> bytes:
    """New-format header for a packet of ``length`` body bytes."""
    if length < 192:
        return bytes([0xC0 | tag, length])
    if length < 8384:
        length -= 192
        return bytes([0xC0 | tag, (length >> 8) + 192, length & 0xFF])
    return bytes([0xC0 | tag, 0xFF]) + length.to_bytes(4, "big")


class BodyReader:
    """
    Cursor over a packet body.

    Every read checks bounds and raises MalformedPacketError tagged with the
    owning packet type.
    """

    def __init__(self, body: bytes, *, packet_tag: int | None = None) -> None:
        self._body = body
        self._pos = 0
        self._tag = packet_tag

    @property
    def position(self) -> int:
        return self._pos

    @property
    def remaining(self) -> int:
        return len(self._body) - self._pos

    @property
    def at_end(self) -> bool:
        return self._pos >= len(self._body)

    def read(self, size: int) -> bytes:
        if size < 0 or size > self.remaining:
            msg = f"Packet body truncated: need {size} bytes, have {self.remaining}"
            raise MalformedPacketError(msg, packet_tag=self._tag, offset=self._pos)
        chunk = self._body[self._pos : self._pos + size]
        self._pos += size
        return chunk

    def read_byte(self) -> int:
        return self.read(1)[0]

    def read_uint16(self) -> int:
        return int.from_bytes(self.read(2), "big")

    def read_uint32(self) -> int:
        return int.from_bytes(self.read(4), "big")

    def read_rest(self) -> bytes:
        return self.read(self.remaining)

    def read_mpi(self) -> bytes:
        """
        Read an MPI (Multi-Precision Integer).

        MPI format: [bit_count(2 bytes)] + [big-endian magnitude]
        """
        bit_count = self.read_uint16()
        return self.read((bit_count + 7) // 8)

    def read_mpi_int(self) -> int:
        return int.from_bytes(self.read_mpi(), "big")

    def read_oid(self) -> bytes:
        size = self.read_byte()
        if size in (0, 0xFF):
            msg = f"Reserved curve OID length: {size}"
            raise MalformedPacketError(msg, packet_tag=self._tag, offset=self._pos)
        return self.read(size)


def read_mpi(data: bytes) -> tuple[bytes, int]:
    """
    Parse an MPI from the start of ``data``.

    Returns:
        Tuple of (mpi_bytes, total_bytes_consumed).
    """
    reader = BodyReader(data)
    value = reader.read_mpi()
    return value, reader.position
