"""
pgp_decrypt: OpenPGP decrypt-and-verify engine.

Example:
    ```python
    from pgp_decrypt import PGPDecryptClient

    client = PGPDecryptClient()
    result = client.decrypt(armored_message, armored_private_key, "passphrase", armored_public_key)

    if result.is_trusted:
        print(result.plaintext.decode())
    print(result.verification)  # valid / invalid / signer_unknown / unsigned / skipped
    ```
"""

from pgp_decrypt.client import PGPDecryptClient
from pgp_decrypt.config import DecryptConfig
from pgp_decrypt.core.secure_bytes import SecureBytes
from pgp_decrypt.crypto.keys import load_private_key, load_public_key
from pgp_decrypt.crypto.verifier import verify_detached
from pgp_decrypt.exceptions import (
    ArmorError,
    DecryptionTimeoutError,
    IntegrityError,
    KeyParseError,
    MalformedPacketError,
    PassphraseError,
    PGPDecryptError,
    SessionKeyError,
    UnsupportedAlgorithmError,
    public_message,
)
from pgp_decrypt.models.result import DecryptionResult, SignatureCheck, VerificationOutcome
from pgp_decrypt.orchestrator import DecryptionOrchestrator, decrypt_and_verify
from pgp_decrypt.sources import FileSource, read_passphrase

__version__ = "0.1.0"

__all__ = [
    # Entry points
    "PGPDecryptClient",
    "DecryptionOrchestrator",
    "decrypt_and_verify",
    "verify_detached",
    "load_private_key",
    "load_public_key",
    "DecryptConfig",
    "SecureBytes",
    # Sourcing
    "FileSource",
    "read_passphrase",
    # Results
    "DecryptionResult",
    "SignatureCheck",
    "VerificationOutcome",
    # Exceptions
    "PGPDecryptError",
    "MalformedPacketError",
    "ArmorError",
    "KeyParseError",
    "PassphraseError",
    "SessionKeyError",
    "IntegrityError",
    "UnsupportedAlgorithmError",
    "DecryptionTimeoutError",
    "public_message",
]
