"""
pgp_decrypt exception hierarchy.

All exceptions inherit from PGPDecryptError for easy catching. Each subclass maps
to one operationally distinct failure so callers can tell a wrong passphrase from
a wrong recipient key from corrupted ciphertext.
"""

from typing import Any


class PGPDecryptError(Exception):
    """Base exception for all pgp_decrypt errors."""

    stage: str | None = None

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = {k: v for k, v in context.items() if v is not None}

    def __str__(self) -> str:
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx})"
        return self.message


class MalformedPacketError(PGPDecryptError):
    """Binary packet stream is structurally invalid."""

    stage = "packets"

    def __init__(
        self, message: str, *, packet_tag: int | None = None, offset: int | None = None
    ) -> None:
        super().__init__(message, packet_tag=packet_tag, offset=offset)
        self.packet_tag = packet_tag
        self.offset = offset


class ArmorError(MalformedPacketError):
    """ASCII armor could not be decoded (bad framing, base64 or CRC-24)."""


class KeyParseError(PGPDecryptError):
    """Key block is structurally invalid or holds no usable key."""

    stage = "keys"

    def __init__(self, message: str, *, key_id: str | None = None) -> None:
        super().__init__(message, key_id=key_id)
        self.key_id = key_id


class PassphraseError(PGPDecryptError):
    """Secret key parameters failed to unlock with the supplied passphrase."""

    stage = "keys"

    def __init__(self, message: str = "Incorrect passphrase", *, key_id: str | None = None) -> None:
        super().__init__(message, key_id=key_id)
        self.key_id = key_id


class SessionKeyError(PGPDecryptError):
    """Session key could not be recovered with the supplied private key."""

    stage = "session_key"

    def __init__(
        self,
        message: str,
        *,
        key_id: str | None = None,
        recipients: tuple[str, ...] | None = None,
    ) -> None:
        super().__init__(message, key_id=key_id, recipients=recipients)
        self.key_id = key_id
        self.recipients = recipients


class IntegrityError(PGPDecryptError):
    """Decrypted data failed integrity verification (MDC or AEAD tag mismatch)."""

    stage = "decrypt"

    def __init__(self, message: str, *, packet_tag: int | None = None) -> None:
        super().__init__(message, packet_tag=packet_tag)
        self.packet_tag = packet_tag


class UnsupportedAlgorithmError(PGPDecryptError):
    """Packet names an algorithm or version this library does not implement."""

    def __init__(self, message: str, *, algorithm: int | str | None = None) -> None:
        super().__init__(message, algorithm=algorithm)
        self.algorithm = algorithm


class DecryptionTimeoutError(PGPDecryptError):
    """Caller-imposed deadline elapsed before the orchestration finished."""

    def __init__(self, message: str, *, timeout: float) -> None:
        super().__init__(message, timeout=timeout)
        self.timeout = timeout


def public_message(error: PGPDecryptError, *, detailed: bool = False) -> str:
    """
    Render an error for a user-facing boundary.

    Wrong passphrase, wrong key and corrupted ciphertext collapse into one generic
    message unless ``detailed`` is set; the full error remains available for logs.
    """
    if detailed:
        return str(error)
    if isinstance(error, DecryptionTimeoutError):
        return "Decryption timed out"
    return "Decryption failed"
