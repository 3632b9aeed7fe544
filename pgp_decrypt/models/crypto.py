"""
Cryptographic domain models.
"""

import hashlib
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any, Self

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec

from pgp_decrypt.core.secure_bytes import SecureBytes


class SymmetricAlgorithm(IntEnum):
    """OpenPGP symmetric algorithm identifiers."""

    PLAINTEXT = 0
    IDEA = 1
    TRIPLE_DES = 2
    CAST5 = 3
    BLOWFISH = 4
    AES_128 = 7
    AES_192 = 8
    AES_256 = 9
    TWOFISH = 10
    CAMELLIA_128 = 11
    CAMELLIA_192 = 12
    CAMELLIA_256 = 13

    @property
    def key_size(self) -> int:
        """Get key size in bytes for this algorithm."""
        match self:
            case self.AES_128 | self.CAST5 | self.BLOWFISH | self.CAMELLIA_128 | self.IDEA:
                return 16
            case self.AES_192 | self.TRIPLE_DES | self.CAMELLIA_192:
                return 24
            case self.AES_256 | self.TWOFISH | self.CAMELLIA_256:
                return 32
            case _:
                return 0

    @property
    def block_size(self) -> int:
        """Get block size in bytes for this algorithm."""
        match self:
            case self.CAST5 | self.BLOWFISH | self.TRIPLE_DES | self.IDEA:
                return 8
            case (
                self.AES_128
                | self.AES_192
                | self.AES_256
                | self.TWOFISH
                | self.CAMELLIA_128
                | self.CAMELLIA_192
                | self.CAMELLIA_256
            ):
                return 16
            case _:
                return 0

    @property
    def is_aes(self) -> bool:
        return self in (self.AES_128, self.AES_192, self.AES_256)


class AEADAlgorithm(IntEnum):
    """OpenPGP AEAD mode identifiers."""

    EAX = 1
    OCB = 2
    GCM = 3

    @property
    def nonce_size(self) -> int:
        match self:
            case self.EAX:
                return 16
            case self.OCB:
                return 15
            case _:
                return 12

    @property
    def tag_size(self) -> int:
        return 16


class HashAlgorithm(IntEnum):
    """OpenPGP hash algorithm identifiers."""

    MD5 = 1
    SHA1 = 2
    RIPEMD160 = 3
    SHA256 = 8
    SHA384 = 9
    SHA512 = 10
    SHA224 = 11
    SHA3_256 = 12
    SHA3_512 = 14

    @property
    def hashlib_name(self) -> str:
        return {
            self.MD5: "md5",
            self.SHA1: "sha1",
            self.RIPEMD160: "ripemd160",
            self.SHA256: "sha256",
            self.SHA384: "sha384",
            self.SHA512: "sha512",
            self.SHA224: "sha224",
            self.SHA3_256: "sha3_256",
            self.SHA3_512: "sha3_512",
        }[self]

    @property
    def digest_size(self) -> int:
        return self.new().digest_size

    def new(self, data: bytes = b"") -> Any:
        """Create a hashlib object for this algorithm."""
        return hashlib.new(self.hashlib_name, data)

    def cryptography_hash(self) -> hashes.HashAlgorithm:
        """Equivalent hash object from the cryptography package."""
        match self:
            case self.MD5:
                return hashes.MD5()
            case self.SHA1:
                return hashes.SHA1()
            case self.SHA256:
                return hashes.SHA256()
            case self.SHA384:
                return hashes.SHA384()
            case self.SHA512:
                return hashes.SHA512()
            case self.SHA224:
                return hashes.SHA224()
            case self.SHA3_256:
                return hashes.SHA3_256()
            case self.SHA3_512:
                return hashes.SHA3_512()
            case _:
                msg = f"No cryptography equivalent for {self.name}"
                raise ValueError(msg)


class CompressionAlgorithm(IntEnum):
    """OpenPGP compression algorithm identifiers."""

    UNCOMPRESSED = 0
    ZIP = 1
    ZLIB = 2
    BZIP2 = 3


class PublicKeyAlgorithm(IntEnum):
    """OpenPGP public key algorithm identifiers."""

    RSA_ENCRYPT_OR_SIGN = 1
    RSA_ENCRYPT_ONLY = 2
    RSA_SIGN_ONLY = 3
    ELGAMAL_ENCRYPT_ONLY = 16
    DSA = 17
    ECDH = 18
    ECDSA = 19
    ELGAMAL_ENCRYPT_OR_SIGN = 20
    EDDSA = 22
    X25519 = 25
    X448 = 26
    ED25519 = 27
    ED448 = 28

    @property
    def is_rsa(self) -> bool:
        return self in (self.RSA_ENCRYPT_OR_SIGN, self.RSA_ENCRYPT_ONLY, self.RSA_SIGN_ONLY)

    @property
    def can_encrypt(self) -> bool:
        return self in (
            self.RSA_ENCRYPT_OR_SIGN,
            self.RSA_ENCRYPT_ONLY,
            self.ELGAMAL_ENCRYPT_ONLY,
            self.ELGAMAL_ENCRYPT_OR_SIGN,
            self.ECDH,
            self.X25519,
            self.X448,
        )

    @property
    def can_sign(self) -> bool:
        return self in (
            self.RSA_ENCRYPT_OR_SIGN,
            self.RSA_SIGN_ONLY,
            self.DSA,
            self.ECDSA,
            self.ELGAMAL_ENCRYPT_OR_SIGN,
            self.EDDSA,
            self.ED25519,
            self.ED448,
        )


class EllipticCurve(Enum):
    """Curves usable with ECDH, ECDSA and EdDSA keys, keyed by DER OID body."""

    NIST_P256 = bytes.fromhex("2a8648ce3d030107")
    NIST_P384 = bytes.fromhex("2b81040022")
    NIST_P521 = bytes.fromhex("2b81040023")
    ED25519 = bytes.fromhex("2b06010401da470f01")
    CURVE25519 = bytes.fromhex("2b060104019755010501")

    @classmethod
    def from_oid(cls, oid: bytes) -> Self:
        return cls(bytes(oid))

    @property
    def key_size(self) -> int:
        """Size in bytes of a scalar/coordinate on this curve."""
        match self:
            case self.NIST_P384:
                return 48
            case self.NIST_P521:
                return 66
            case _:
                return 32

    @property
    def is_nist(self) -> bool:
        return self in (self.NIST_P256, self.NIST_P384, self.NIST_P521)

    def nist_curve(self) -> ec.EllipticCurve:
        match self:
            case self.NIST_P256:
                return ec.SECP256R1()
            case self.NIST_P384:
                return ec.SECP384R1()
            case self.NIST_P521:
                return ec.SECP521R1()
            case _:
                msg = f"{self.name} is not a NIST curve"
                raise ValueError(msg)


@dataclass(frozen=True, kw_only=True)
class SessionKey:
    """
    Represents a decrypted session key for message encryption.

    The key bytes live in a SecureBytes buffer and must be cleared once the
    symmetric decryption finished, on success and on failure.

    Attributes:
        algorithm: The symmetric algorithm used.
        key_data: The raw key bytes.
    """

    algorithm: SymmetricAlgorithm
    key_data: SecureBytes

    def __post_init__(self) -> None:
        """Validate key size matches algorithm."""
        expected = self.algorithm.key_size
        if not expected or (len(self.key_data) == expected):
            return
        msg = f"Key size mismatch: {self.algorithm.name} expects {expected} bytes, got {len(self.key_data)}"
        raise ValueError(msg)

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *_: object) -> None:
        self.clear()

    @property
    def block_size(self) -> int:
        """Get the block size for this key's algorithm."""
        return self.algorithm.block_size

    @property
    def is_cleared(self) -> bool:
        return self.key_data.is_cleared

    def clear(self) -> None:
        self.key_data.clear()


@dataclass(frozen=True, kw_only=True)
class PKESKPacket:
    """
    Public-Key Encrypted Session Key packet data.

    Version 3 addresses the recipient by key id; version 6 by key version and
    fingerprint. An all-zero key id is a wildcard ("anonymous recipient").
    """

    version: int
    key_id: bytes  # 8 bytes, zeros for wildcard
    algorithm: PublicKeyAlgorithm
    encrypted_session_key: bytes
    fingerprint: bytes | None = None

    @property
    def is_wildcard(self) -> bool:
        return not any(self.key_id)

    @property
    def key_id_hex(self) -> str:
        return self.key_id.hex().upper()


@dataclass(frozen=True, kw_only=True)
class SEIPDPacket:
    """
    Symmetrically Encrypted Integrity Protected Data packet.

    Version 1 carries a CFB stream ending in an MDC packet; version 2 carries
    AEAD chunks and declares its cipher, mode, chunk size and salt up front.
    """

    version: int
    encrypted_data: bytes
    cipher: SymmetricAlgorithm | None = None
    aead: AEADAlgorithm | None = None
    chunk_size_octet: int | None = None
    salt: bytes | None = None

    @property
    def chunk_size(self) -> int:
        if self.chunk_size_octet is None:
            return 0
        return 1 << (self.chunk_size_octet + 6)


@dataclass(frozen=True, kw_only=True)
class SEDPacket:
    """Legacy Symmetrically Encrypted Data packet (no integrity protection)."""

    encrypted_data: bytes
