"""
Domain models for pgp_decrypt.

These are immutable (frozen) dataclasses and enums representing packets, keys,
signatures and decryption outcomes.
"""

from pgp_decrypt.models.crypto import (
    AEADAlgorithm,
    CompressionAlgorithm,
    EllipticCurve,
    HashAlgorithm,
    PKESKPacket,
    PublicKeyAlgorithm,
    SEDPacket,
    SEIPDPacket,
    SessionKey,
    SymmetricAlgorithm,
)
from pgp_decrypt.models.keys import KeyFlags, KeyUsage, S2KType, S2KUsage
from pgp_decrypt.models.packets import (
    LiteralData,
    LiteralFormat,
    OnePassSignature,
    Packet,
    PacketTag,
)
from pgp_decrypt.models.result import (
    DecryptionResult,
    DecryptionState,
    SignatureCheck,
    VerificationOutcome,
)
from pgp_decrypt.models.signature import Signature, SignatureType, Subpacket, SubpacketType

__all__ = [
    # Crypto
    "SymmetricAlgorithm",
    "AEADAlgorithm",
    "HashAlgorithm",
    "CompressionAlgorithm",
    "PublicKeyAlgorithm",
    "EllipticCurve",
    "SessionKey",
    "PKESKPacket",
    "SEIPDPacket",
    "SEDPacket",
    # Keys
    "KeyFlags",
    "KeyUsage",
    "S2KUsage",
    "S2KType",
    # Packets
    "Packet",
    "PacketTag",
    "LiteralData",
    "LiteralFormat",
    "OnePassSignature",
    # Signatures
    "Signature",
    "SignatureType",
    "Subpacket",
    "SubpacketType",
    # Results
    "DecryptionResult",
    "DecryptionState",
    "SignatureCheck",
    "VerificationOutcome",
]
