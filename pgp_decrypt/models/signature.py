"""
Signature domain models.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import IntEnum

from pgp_decrypt.models.crypto import HashAlgorithm, PublicKeyAlgorithm


class SignatureType(IntEnum):
    """OpenPGP signature types used by this library."""

    BINARY = 0x00
    TEXT = 0x01
    STANDALONE = 0x02
    GENERIC_CERTIFICATION = 0x10
    PERSONA_CERTIFICATION = 0x11
    CASUAL_CERTIFICATION = 0x12
    POSITIVE_CERTIFICATION = 0x13
    SUBKEY_BINDING = 0x18
    PRIMARY_KEY_BINDING = 0x19
    DIRECT_KEY = 0x1F
    KEY_REVOCATION = 0x20
    SUBKEY_REVOCATION = 0x28
    CERTIFICATION_REVOCATION = 0x30
    TIMESTAMP = 0x40
    THIRD_PARTY_CONFIRMATION = 0x50

    @property
    def is_certification(self) -> bool:
        return 0x10 <= self.value <= 0x13


class SubpacketType(IntEnum):
    """Signature subpacket types that are interpreted here."""

    CREATION_TIME = 2
    EXPIRATION_TIME = 3
    KEY_EXPIRATION_TIME = 9
    ISSUER = 16
    PRIMARY_USER_ID = 25
    KEY_FLAGS = 27
    SIGNERS_USER_ID = 28
    REVOCATION_REASON = 29
    EMBEDDED_SIGNATURE = 32
    ISSUER_FINGERPRINT = 33


@dataclass(frozen=True, kw_only=True)
class Subpacket:
    type: int
    critical: bool
    data: bytes


@dataclass(frozen=True, kw_only=True)
class Signature:
    """
    Parsed version 3 or 4 signature packet.

    Attributes:
        signature_type: Raw signature type octet.
        pubkey_algorithm: Algorithm of the issuing key.
        hash_algorithm: Digest algorithm over the signed data.
        hashed_header: Bytes from the version octet through the end of the hashed
            subpacket area; hashed after the signed data.
        hashed_subpackets: Subpackets covered by the signature.
        unhashed_subpackets: Advisory subpackets not covered by the signature.
        hash_prefix: Left 16 bits of the signed digest.
        values: Algorithm-specific signature integers (RSA: s; DSA/ECDSA/EdDSA: r, s).
    """

    version: int
    signature_type: int
    pubkey_algorithm: PublicKeyAlgorithm
    hash_algorithm: HashAlgorithm
    hashed_header: bytes
    hashed_subpackets: tuple[Subpacket, ...] = ()
    unhashed_subpackets: tuple[Subpacket, ...] = ()
    hash_prefix: bytes = b""
    values: tuple[bytes, ...] = field(default_factory=tuple)
    legacy_issuer: bytes | None = None
    legacy_created: int | None = None

    def _find(self, kind: SubpacketType, *, hashed_only: bool = False) -> Subpacket | None:
        areas = (self.hashed_subpackets,) if hashed_only else (
            self.hashed_subpackets,
            self.unhashed_subpackets,
        )
        for area in areas:
            for subpacket in area:
                if subpacket.type == kind:
                    return subpacket
        return None

    @property
    def creation_time(self) -> datetime | None:
        if self.legacy_created is not None:
            return datetime.fromtimestamp(self.legacy_created, tz=timezone.utc)
        subpacket = self._find(SubpacketType.CREATION_TIME, hashed_only=True)
        if subpacket is None or len(subpacket.data) != 4:
            return None
        return datetime.fromtimestamp(int.from_bytes(subpacket.data, "big"), tz=timezone.utc)

    @property
    def expiration_time(self) -> datetime | None:
        subpacket = self._find(SubpacketType.EXPIRATION_TIME, hashed_only=True)
        created = self.creation_time
        if subpacket is None or created is None:
            return None
        seconds = int.from_bytes(subpacket.data, "big")
        if seconds == 0:
            return None
        return created + timedelta(seconds=seconds)

    @property
    def key_expiration_seconds(self) -> int | None:
        subpacket = self._find(SubpacketType.KEY_EXPIRATION_TIME, hashed_only=True)
        if subpacket is None:
            return None
        return int.from_bytes(subpacket.data, "big")

    @property
    def key_flags(self) -> int | None:
        subpacket = self._find(SubpacketType.KEY_FLAGS, hashed_only=True)
        if subpacket is None or not subpacket.data:
            return None
        return subpacket.data[0]

    @property
    def issuer_key_id(self) -> bytes | None:
        if self.legacy_issuer is not None:
            return self.legacy_issuer
        subpacket = self._find(SubpacketType.ISSUER)
        if subpacket is not None and len(subpacket.data) == 8:
            return subpacket.data
        fingerprint = self.issuer_fingerprint
        if fingerprint is not None:
            return fingerprint[-8:]
        return None

    @property
    def issuer_fingerprint(self) -> bytes | None:
        subpacket = self._find(SubpacketType.ISSUER_FINGERPRINT)
        if subpacket is None or len(subpacket.data) < 2:
            return None
        # First octet is the key version
        return subpacket.data[1:]
