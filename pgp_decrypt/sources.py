"""
File-based sourcing adapter.

Reads the encrypted message, key blocks and passphrase from disk and writes the
recovered plaintext back out. The core engine only ever sees bytes.
"""

from dataclasses import dataclass
from pathlib import Path

import structlog

from pgp_decrypt.core.secure_bytes import SecureBytes, wipe
from pgp_decrypt.exceptions import MalformedPacketError

logger = structlog.get_logger(__name__)


def read_passphrase(path: Path | str) -> SecureBytes:
    """
    Read a passphrase file, dropping one trailing line ending.

    Args:
        path: Passphrase file.

    Returns:
        Passphrase in a SecureBytes buffer; the caller clears it.
    """
    raw = bytearray(Path(path).read_bytes())
    try:
        for ending in (b"\r\n", b"\n"):
            if raw.endswith(ending):
                del raw[-len(ending) :]
                break
        return SecureBytes(raw)
    finally:
        wipe(raw)


def write_plaintext(path: Path | str, data: bytes) -> Path:
    """Write ``data`` to ``path``, creating parent directories."""
    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_bytes(data)
    logger.info("Plaintext written", destination=str(destination), size=len(data))
    return destination


@dataclass(frozen=True, kw_only=True)
class FileSource:
    """
    Locations of the inputs of one decrypt operation.

    Attributes:
        message_path: Encrypted message (armored or binary).
        private_key_path: Secret key block.
        passphrase_path: File holding the passphrase; None when supplied directly.
        public_key_path: Optional key block of the expected signer.
    """

    message_path: Path
    private_key_path: Path
    passphrase_path: Path | None = None
    public_key_path: Path | None = None

    def __post_init__(self) -> None:
        for name in ("message_path", "private_key_path", "passphrase_path", "public_key_path"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, Path):
                object.__setattr__(self, name, Path(value))

    def read_message(self, *, max_size: int | None = None) -> bytes:
        """
        Read the encrypted message.

        Raises:
            MalformedPacketError: If the file is larger than ``max_size``.
        """
        if max_size is not None:
            size = self.message_path.stat().st_size
            if size > max_size:
                msg = f"Message file exceeds maximum input size of {max_size} bytes"
                raise MalformedPacketError(msg)
        return self.message_path.read_bytes()

    def read_private_key(self) -> bytes:
        return self.private_key_path.read_bytes()

    def read_public_key(self) -> bytes | None:
        if self.public_key_path is None:
            return None
        return self.public_key_path.read_bytes()

    def read_passphrase(self) -> SecureBytes:
        if self.passphrase_path is None:
            msg = "No passphrase file configured"
            raise ValueError(msg)
        return read_passphrase(self.passphrase_path)
