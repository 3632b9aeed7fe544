"""
Key-related domain models.
"""

from enum import IntEnum, IntFlag, StrEnum


class KeyFlags(IntFlag):
    """Key usage flags from signature subpacket 27."""

    CERTIFY = 0x01
    SIGN = 0x02
    ENCRYPT_COMMUNICATIONS = 0x04
    ENCRYPT_STORAGE = 0x08
    SPLIT = 0x10
    AUTHENTICATE = 0x20
    GROUP = 0x80

    @property
    def can_encrypt(self) -> bool:
        return bool(self & (KeyFlags.ENCRYPT_COMMUNICATIONS | KeyFlags.ENCRYPT_STORAGE))

    @property
    def can_sign(self) -> bool:
        return bool(self & KeyFlags.SIGN)

    @property
    def can_certify(self) -> bool:
        return bool(self & KeyFlags.CERTIFY)


class KeyUsage(StrEnum):
    """What a key is being selected for."""

    ENCRYPT = "encrypt"
    SIGN = "sign"
    CERTIFY = "certify"


class S2KUsage(IntEnum):
    """Secret key protection usage octet. Any other value names a cipher (legacy)."""

    UNPROTECTED = 0
    AEAD = 253
    SHA1_CHECK = 254
    CHECKSUM = 255


class S2KType(IntEnum):
    """String-to-key specifier types."""

    SIMPLE = 0
    SALTED = 1
    ITERATED_SALTED = 3
    ARGON2 = 4
    GNU_EXTENSION = 101
