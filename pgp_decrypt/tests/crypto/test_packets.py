import pytest

from pgp_decrypt.crypto.packets import (
    BodyReader,
    PacketReader,
    encode_packet_header,
    parse_packet_tag,
    read_mpi,
    read_packet,
    read_packets,
)
from pgp_decrypt.exceptions import MalformedPacketError
from pgp_decrypt.models.packets import PacketTag
from pgp_decrypt.tests.builders import literal, old_packet, packet, partial_packet


def test_parse_packet_tag_decodes_new_format() -> None:
    assert parse_packet_tag(0xC1) == (1, True)
    assert parse_packet_tag(0xD2) == (18, True)


def test_parse_packet_tag_decodes_old_format() -> None:
    assert parse_packet_tag(0x84) == (1, False)
    assert parse_packet_tag(0xA3) == (8, False)


def test_parse_packet_tag_rejects_missing_high_bit() -> None:
    with pytest.raises(MalformedPacketError, match="Invalid packet header"):
        parse_packet_tag(0x3F)


def test_read_packets_splits_consecutive_packets() -> None:
    data = packet(13, b"Alice") + packet(11, b"b\x00\x00\x00\x00\x00data")

    packets = read_packets(data)

    assert [p.packet_tag for p in packets] == [PacketTag.USER_ID, PacketTag.LITERAL_DATA]
    assert packets[0].body == b"Alice"
    assert packets[1].offset == 7


def test_read_packet_handles_two_octet_length() -> None:
    body = bytes(range(256)) * 2

    parsed, next_offset = read_packet(packet(11, body), 0)

    assert parsed.body == body
    assert parsed.header_length == 3
    assert next_offset == 3 + len(body)


def test_read_packet_handles_five_octet_length() -> None:
    body = bytes(9000)

    parsed, _ = read_packet(packet(11, body), 0)

    assert parsed.length == 9000
    assert parsed.header_length == 6


def test_read_packet_joins_partial_body_chunks() -> None:
    body = bytes(range(256)) * 5

    parsed, next_offset = read_packet(partial_packet(11, body), 0)

    assert parsed.body == body
    assert parsed.partial is True
    assert next_offset == len(partial_packet(11, body))


def test_read_packet_rejects_partial_length_on_user_id() -> None:
    data = bytes([0xC0 | 13, 0xE1, 0x00, 0x00, 0x01, 0x00])

    with pytest.raises(MalformedPacketError, match="Partial body length"):
        read_packet(data, 0)


def test_read_packet_handles_old_format_lengths() -> None:
    body = b"hello world"
    one_octet = bytes([0x80 | (13 << 2)]) + bytes([len(body)]) + body
    two_octet = bytes([0x80 | (13 << 2) | 1]) + len(body).to_bytes(2, "big") + body

    for data in (one_octet, two_octet, old_packet(13, body)):
        parsed, _ = read_packet(data, 0)
        assert parsed.body == body
        assert parsed.new_format is False


def test_read_packet_old_format_indeterminate_runs_to_end() -> None:
    data = bytes([0x80 | (11 << 2) | 3]) + b"everything else"

    parsed, next_offset = read_packet(data, 0)

    assert parsed.body == b"everything else"
    assert next_offset == len(data)


def test_read_packet_rejects_length_beyond_buffer() -> None:
    data = bytes([0xCB, 50]) + bytes(10)

    with pytest.raises(MalformedPacketError, match="exceeds remaining") as exc_info:
        read_packet(data, 0)

    assert exc_info.value.packet_tag == 11
    assert exc_info.value.offset == 0


def test_read_packet_rejects_truncated_five_octet_length() -> None:
    with pytest.raises(MalformedPacketError, match="Incomplete five-byte length"):
        read_packet(bytes([0xCB, 0xFF, 0x00]), 0)


def test_read_packet_rejects_missing_length() -> None:
    with pytest.raises(MalformedPacketError, match="Missing length byte"):
        read_packet(bytes([0xCB]), 0)


def test_read_packet_rejects_reserved_tag() -> None:
    with pytest.raises(MalformedPacketError, match="Reserved packet tag"):
        read_packet(bytes([0xC0, 0x00]), 0)


def test_read_packets_reports_offset_of_broken_packet() -> None:
    data = packet(13, b"ok") + bytes([0xCB, 0x20, 0x01])

    with pytest.raises(MalformedPacketError) as exc_info:
        read_packets(data)

    assert exc_info.value.offset == 4


def test_packet_reader_can_be_iterated_twice() -> None:
    reader = PacketReader(literal(b"one") + literal(b"two"))

    assert len(list(reader)) == 2
    assert len(reader.packets()) == 2


def test_packet_reader_size_is_buffer_length() -> None:
    data = literal(b"one") + literal(b"two")
    reader = PacketReader(data)

    assert reader.size == len(data)
    assert not hasattr(reader, "__len__")


def test_packet_name_for_unknown_tag() -> None:
    parsed, _ = read_packet(packet(60, b"x"), 0)

    assert parsed.packet_tag is None
    assert parsed.name == "UNKNOWN_60"


def test_encode_packet_header_round_trips_through_reader() -> None:
    for size in (0, 191, 192, 8383, 8384, 70000):
        data = encode_packet_header(11, size) + bytes(size)
        parsed, _ = read_packet(data, 0)
        assert parsed.length == size


def test_body_reader_reads_mpi_and_scalars() -> None:
    reader = BodyReader(b"\x00\x09\x01\xff" + b"\x00\x01\x02\x03\x04\x05", packet_tag=1)

    assert reader.read_mpi() == b"\x01\xff"
    assert reader.read_uint16() == 1
    assert reader.read_uint32() == 0x02030405
    assert reader.at_end


def test_body_reader_raises_on_truncation() -> None:
    reader = BodyReader(b"\x00\x10\x01", packet_tag=1)

    with pytest.raises(MalformedPacketError, match="truncated") as exc_info:
        reader.read_mpi()

    assert exc_info.value.packet_tag == 1


def test_body_reader_rejects_reserved_oid_length() -> None:
    with pytest.raises(MalformedPacketError, match="Reserved curve OID length"):
        BodyReader(b"\x00").read_oid()


def test_read_mpi_returns_value_and_consumed_size() -> None:
    value, consumed = read_mpi(b"\x00\x11\x01\x00\x01trailing")

    assert value == b"\x01\x00\x01"
    assert consumed == 5
