"""
String-to-key (S2K) specifiers and passphrase key derivation.
"""

from dataclasses import dataclass
from typing import Any

from pgp_decrypt.core.secure_bytes import SecureBytes, wipe
from pgp_decrypt.crypto.packets import BodyReader
from pgp_decrypt.exceptions import KeyParseError, UnsupportedAlgorithmError
from pgp_decrypt.models.crypto import HashAlgorithm
from pgp_decrypt.models.keys import S2KType

_GNU_MAGIC = b"GNU"
_GNU_DUMMY = 1
_GNU_DIVERT_TO_CARD = 2
_HASH_BLOCK = 64 * 1024


@dataclass(frozen=True, kw_only=True)
class S2KSpecifier:
    """
    Parsed S2K specifier.

    Attributes:
        type: Specifier type.
        hash_algorithm: Digest used for derivation.
        salt: Eight-octet salt (salted and iterated types).
        count_octet: Coded iteration count (iterated type).
        gnu_mode: GnuPG extension mode; 1 marks a stub without secret material.
    """

    type: S2KType
    hash_algorithm: HashAlgorithm
    salt: bytes = b""
    count_octet: int = 0
    gnu_mode: int | None = None

    @property
    def count(self) -> int:
        """Number of octets hashed, decoded from the coded count."""
        if self.type != S2KType.ITERATED_SALTED:
            return 0
        return (16 + (self.count_octet & 15)) << ((self.count_octet >> 4) + 6)

    @property
    def is_stub(self) -> bool:
        return self.type == S2KType.GNU_EXTENSION

    def derive_key(
        self, passphrase: SecureBytes, key_size: int, *, max_count: int | None = None
    ) -> SecureBytes:
        """
        Derive ``key_size`` bytes from ``passphrase``.

        Raises:
            UnsupportedAlgorithmError: For stub or Argon2 specifiers.
            KeyParseError: If the iteration count exceeds ``max_count``.
        """
        if self.type not in (S2KType.SIMPLE, S2KType.SALTED, S2KType.ITERATED_SALTED):
            msg = f"Cannot derive a key from S2K type {self.type.name}"
            raise UnsupportedAlgorithmError(msg, algorithm=f"s2k-{int(self.type)}")
        if max_count is not None and self.count > max_count:
            msg = f"S2K iteration count {self.count} exceeds limit {max_count}"
            raise KeyParseError(msg)

        material = bytearray(self.salt)
        material += bytes(passphrase)
        try:
            output = bytearray()
            preload = 0
            while len(output) < key_size:
                hasher = self.hash_algorithm.new(bytes(preload))
                if self.type == S2KType.ITERATED_SALTED:
                    _feed_repeated(hasher, material, max(self.count, len(material)))
                else:
                    hasher.update(material)
                output += hasher.digest()
                preload += 1
            return SecureBytes(output[:key_size])
        finally:
            wipe(material)
            wipe(output)


def _feed_repeated(hasher: Any, material: bytearray, count: int) -> None:
    if not material:
        return
    block = bytes(material) * max(1, _HASH_BLOCK // len(material))
    while count >= len(block):
        hasher.update(block)
        count -= len(block)
    hasher.update(block[:count])


def parse_s2k(reader: BodyReader) -> S2KSpecifier:
    """
    Read an S2K specifier from a secret key packet body.

    Raises:
        KeyParseError: For unknown specifier or hash types.
        MalformedPacketError: If the body is truncated.
    """
    type_id = reader.read_byte()
    try:
        s2k_type = S2KType(type_id)
    except ValueError:
        msg = f"Unknown S2K specifier type: {type_id}"
        raise KeyParseError(msg) from None

    if s2k_type == S2KType.ARGON2:
        msg = "Argon2 S2K is not supported"
        raise UnsupportedAlgorithmError(msg, algorithm="s2k-argon2")

    hash_id = reader.read_byte()
    if s2k_type == S2KType.GNU_EXTENSION:
        return _parse_gnu_extension(reader, hash_id)
    hash_algorithm = _parse_hash(hash_id)

    match s2k_type:
        case S2KType.SIMPLE:
            return S2KSpecifier(type=s2k_type, hash_algorithm=hash_algorithm)
        case S2KType.SALTED:
            return S2KSpecifier(type=s2k_type, hash_algorithm=hash_algorithm, salt=reader.read(8))
        case S2KType.ITERATED_SALTED:
            salt = reader.read(8)
            return S2KSpecifier(
                type=s2k_type,
                hash_algorithm=hash_algorithm,
                salt=salt,
                count_octet=reader.read_byte(),
            )
        case _:
            msg = f"Unhandled S2K specifier type: {s2k_type.name}"
            raise KeyParseError(msg)


def _parse_gnu_extension(reader: BodyReader, hash_id: int) -> S2KSpecifier:
    if reader.read(3) != _GNU_MAGIC:
        msg = "Unknown S2K extension"
        raise KeyParseError(msg)
    mode = reader.read_byte()
    if mode == _GNU_DIVERT_TO_CARD:
        serial_length = reader.read_byte()
        reader.read(serial_length)
    elif mode != _GNU_DUMMY:
        msg = f"Unknown GnuPG S2K extension mode: {mode}"
        raise KeyParseError(msg)
    try:
        hash_algorithm = HashAlgorithm(hash_id)
    except ValueError:
        # Stubs carry no usable hash; GnuPG writes 0 here
        hash_algorithm = HashAlgorithm.SHA1
    return S2KSpecifier(type=S2KType.GNU_EXTENSION, hash_algorithm=hash_algorithm, gnu_mode=mode)


def _parse_hash(hash_id: int) -> HashAlgorithm:
    try:
        return HashAlgorithm(hash_id)
    except ValueError:
        msg = f"Unknown S2K hash algorithm: {hash_id}"
        raise KeyParseError(msg) from None
