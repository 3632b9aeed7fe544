"""
Signature packet parsing.

Supports version 4 signatures (hashed and unhashed subpacket areas) and the
older version 3 layout still emitted by some tools.
"""

from pgp_decrypt.crypto.packets import BodyReader
from pgp_decrypt.exceptions import MalformedPacketError, UnsupportedAlgorithmError
from pgp_decrypt.models.crypto import HashAlgorithm, PublicKeyAlgorithm
from pgp_decrypt.models.packets import Packet, PacketTag
from pgp_decrypt.models.signature import Signature, Subpacket


def parse_signature_packet(packet: Packet | bytes) -> Signature:
    """
    Parse a Signature packet (tag 2).

    Args:
        packet: Parsed packet, or a raw signature body.

    Returns:
        Parsed Signature.

    Raises:
        MalformedPacketError: If the body is truncated or the tag is wrong.
        UnsupportedAlgorithmError: For unknown versions or algorithms.
    """
    if isinstance(packet, Packet):
        if packet.tag != PacketTag.SIGNATURE:
            msg = f"Expected signature packet (tag 2), got tag {packet.tag}"
            raise MalformedPacketError(msg, packet_tag=packet.tag)
        body = packet.body
    else:
        body = packet

    reader = BodyReader(body, packet_tag=PacketTag.SIGNATURE)
    version = reader.read_byte()
    if version == 4:
        return _parse_v4(reader)
    if version in (2, 3):
        return _parse_v3(reader, version)

    msg = f"Unsupported signature version: {version}"
    raise UnsupportedAlgorithmError(msg, algorithm=f"signature-v{version}")


def _parse_v4(reader: BodyReader) -> Signature:
    signature_type = reader.read_byte()
    pubkey_algorithm = _parse_pubkey_algorithm(reader.read_byte())
    hash_algorithm = _parse_hash_algorithm(reader.read_byte())

    hashed_length = reader.read_uint16()
    hashed_area = reader.read(hashed_length)
    hashed_header = bytes([4, signature_type, pubkey_algorithm, hash_algorithm])
    hashed_header += hashed_length.to_bytes(2, "big") + hashed_area

    unhashed_area = reader.read(reader.read_uint16())
    hash_prefix = reader.read(2)

    return Signature(
        version=4,
        signature_type=signature_type,
        pubkey_algorithm=pubkey_algorithm,
        hash_algorithm=hash_algorithm,
        hashed_header=hashed_header,
        hashed_subpackets=parse_subpackets(hashed_area),
        unhashed_subpackets=parse_subpackets(unhashed_area),
        hash_prefix=hash_prefix,
        values=_read_values(reader, pubkey_algorithm),
    )


def _parse_v3(reader: BodyReader, version: int) -> Signature:
    if reader.read_byte() != 5:
        msg = "Version 3 signature hashed material must be 5 octets"
        raise MalformedPacketError(msg, packet_tag=PacketTag.SIGNATURE)
    hashed_header = reader.read(5)
    issuer = reader.read(8)
    pubkey_algorithm = _parse_pubkey_algorithm(reader.read_byte())
    hash_algorithm = _parse_hash_algorithm(reader.read_byte())
    hash_prefix = reader.read(2)

    return Signature(
        version=version,
        signature_type=hashed_header[0],
        pubkey_algorithm=pubkey_algorithm,
        hash_algorithm=hash_algorithm,
        hashed_header=hashed_header,
        hash_prefix=hash_prefix,
        values=_read_values(reader, pubkey_algorithm),
        legacy_issuer=issuer,
        legacy_created=int.from_bytes(hashed_header[1:5], "big"),
    )


def parse_subpackets(area: bytes) -> tuple[Subpacket, ...]:
    """Split a subpacket area into Subpacket values."""
    reader = BodyReader(area, packet_tag=PacketTag.SIGNATURE)
    subpackets = []
    while not reader.at_end:
        length = _read_subpacket_length(reader)
        if length == 0:
            msg = "Zero-length signature subpacket"
            raise MalformedPacketError(msg, packet_tag=PacketTag.SIGNATURE)
        raw_type = reader.read_byte()
        subpackets.append(
            Subpacket(type=raw_type & 0x7F, critical=bool(raw_type & 0x80), data=reader.read(length - 1))
        )
    return tuple(subpackets)


def _read_subpacket_length(reader: BodyReader) -> int:
    first = reader.read_byte()
    if first < 192:
        return first
    if first < 255:
        return ((first - 192) << 8) + reader.read_byte() + 192
    return reader.read_uint32()


def _read_values(reader: BodyReader, algorithm: PublicKeyAlgorithm) -> tuple[bytes, ...]:
    if algorithm.is_rsa:
        return (reader.read_mpi(),)
    if algorithm in (PublicKeyAlgorithm.DSA, PublicKeyAlgorithm.ECDSA, PublicKeyAlgorithm.EDDSA):
        return reader.read_mpi(), reader.read_mpi()
    if algorithm == PublicKeyAlgorithm.ED25519:
        return (reader.read(64),)
    # Unknown layouts are kept opaque; verification rejects them later
    return (reader.read_rest(),)


def _parse_pubkey_algorithm(algorithm_id: int) -> PublicKeyAlgorithm:
    try:
        return PublicKeyAlgorithm(algorithm_id)
    except ValueError:
        msg = f"Unknown public key algorithm: {algorithm_id}"
        raise UnsupportedAlgorithmError(msg, algorithm=algorithm_id) from None


def _parse_hash_algorithm(algorithm_id: int) -> HashAlgorithm:
    try:
        return HashAlgorithm(algorithm_id)
    except ValueError:
        msg = f"Unknown hash algorithm: {algorithm_id}"
        raise UnsupportedAlgorithmError(msg, algorithm=algorithm_id) from None
