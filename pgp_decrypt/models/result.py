"""
Decryption outcome models.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from pgp_decrypt.models.crypto import SymmetricAlgorithm


class VerificationOutcome(StrEnum):
    """
    Result of checking the signatures embedded in a message.

    SIGNER_UNKNOWN means no supplied key matches the issuer; it is not a
    cryptographic failure. SKIPPED means the message is signed but no public key
    was supplied (or verification was disabled).
    """

    VALID = "valid"
    INVALID = "invalid"
    SIGNER_UNKNOWN = "signer_unknown"
    UNSIGNED = "unsigned"
    SKIPPED = "skipped"


class DecryptionState(StrEnum):
    """Orchestrator progress markers."""

    START = "start"
    PACKETS_PARSED = "packets_parsed"
    SESSION_KEY_RESOLVED = "session_key_resolved"
    DECRYPTED = "decrypted"
    VERIFIED = "verified"
    VERIFICATION_SKIPPED = "verification_skipped"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True, kw_only=True)
class SignatureCheck:
    """Outcome for one signature packet."""

    outcome: VerificationOutcome
    issuer_key_id: str | None
    signer_key_id: str | None = None
    signer_fingerprint: str | None = None
    created_at: datetime | None = None
    reason: str | None = None


@dataclass(frozen=True, kw_only=True)
class DecryptionResult:
    """
    Final product of one decrypt-and-verify run.

    Attributes:
        plaintext: Recovered literal content. Present when integrity held, or
            when the caller asked for the unsafe diagnostic path.
        integrity_ok: Whether the MDC / AEAD tags verified.
        verification: Aggregate signature outcome.
        signer_key_id: Key id of the key that produced a VALID signature.
        signatures: Per-signature detail.
        filename: File name carried in the literal data packet.
        literal_format: Literal data format octet as a character.
        modification_time: Timestamp carried in the literal data packet.
        session_algorithm: Cipher the message was encrypted with.
        recipient_key_id: Key id of the private key that unwrapped the session key.
    """

    plaintext: bytes
    integrity_ok: bool
    verification: VerificationOutcome
    signer_key_id: str | None = None
    signatures: tuple[SignatureCheck, ...] = ()
    filename: str | None = None
    literal_format: str | None = None
    modification_time: datetime | None = None
    session_algorithm: SymmetricAlgorithm | None = None
    recipient_key_id: str | None = None

    @property
    def is_trusted(self) -> bool:
        """Plaintext is authentic: integrity held and no signature failed."""
        return self.integrity_ok and self.verification is not VerificationOutcome.INVALID

    @property
    def is_signed(self) -> bool:
        return self.verification is not VerificationOutcome.UNSIGNED

    def __repr__(self) -> str:
        return (
            f"DecryptionResult(<{len(self.plaintext)} bytes>, integrity_ok={self.integrity_ok}, "
            f"verification={self.verification.value}, signer_key_id={self.signer_key_id!r})"
        )
