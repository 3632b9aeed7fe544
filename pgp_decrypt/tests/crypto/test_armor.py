import pytest

from pgp_decrypt.crypto.armor import is_armored, unarmor
from pgp_decrypt.exceptions import ArmorError, MalformedPacketError
from pgp_decrypt.tests.builders import armor, literal


def test_unarmor_decodes_armored_text() -> None:
    data = literal(b"armored content")

    assert unarmor(armor(data)) == data


def test_unarmor_accepts_armored_bytes() -> None:
    data = literal(b"armored content")

    assert unarmor(armor(data).encode("ascii")) == data


def test_unarmor_passes_binary_through() -> None:
    data = literal(b"\x00\xff binary")

    assert unarmor(data) == data


def test_unarmor_handles_long_bodies_across_lines() -> None:
    data = literal(bytes(range(256)) * 8)

    assert unarmor(armor(data, "PRIVATE KEY BLOCK")) == data


def test_unarmor_raises_on_crc_mismatch() -> None:
    text = armor(literal(b"payload"))
    lines = text.splitlines()
    crc_index = next(i for i, line in enumerate(lines) if line.startswith("="))
    lines[crc_index] = "=AAAA" if lines[crc_index] != "=AAAA" else "=BBBB"

    with pytest.raises(ArmorError):
        unarmor("\n".join(lines) + "\n")


def test_unarmor_raises_on_missing_framing() -> None:
    with pytest.raises(ArmorError, match="Invalid ASCII armor"):
        unarmor("-----BEGIN PGP MESSAGE-----\n\nnot base64 at all!!\n")


def test_armor_error_is_a_malformed_packet_error() -> None:
    assert issubclass(ArmorError, MalformedPacketError)


def test_is_armored_detects_text_and_bytes() -> None:
    text = armor(literal(b"x"))

    assert is_armored(text) is True
    assert is_armored(text.encode()) is True
    assert is_armored(literal(b"x")) is False
