"""
pgp_decrypt client facade.

The main entry point for callers such as web handlers, CLIs and batch jobs. It
wraps the orchestrator with a synchronous API, an async API bounded by the
configured timeout, and a file-based convenience method.
"""

import asyncio
from pathlib import Path

import structlog

from pgp_decrypt.config import DecryptConfig
from pgp_decrypt.core.secure_bytes import SecureBytes
from pgp_decrypt.crypto.keys import KeyBlock
from pgp_decrypt.exceptions import DecryptionTimeoutError, PGPDecryptError, public_message
from pgp_decrypt.models.result import DecryptionResult
from pgp_decrypt.orchestrator import DecryptionOrchestrator
from pgp_decrypt.sources import FileSource, write_plaintext

logger = structlog.get_logger(__name__)


class PGPDecryptClient:
    """
    Decrypt-and-verify client.

    Example:
        ```python
        client = PGPDecryptClient(DecryptConfig(timeout=10.0))

        result = client.decrypt(message, private_key, "passphrase", public_key)
        if result.is_trusted:
            process(result.plaintext)

        # From async code
        result = await client.decrypt_async(message, private_key, "passphrase")
        ```

    Args:
        config: Engine configuration. Uses defaults if not provided.
    """

    def __init__(self, config: DecryptConfig | None = None) -> None:
        self._config = config or DecryptConfig()
        self._orchestrator = DecryptionOrchestrator(self._config)

    @property
    def config(self) -> DecryptConfig:
        return self._config

    def decrypt(
        self,
        encrypted: bytes | str,
        private_key: bytes | str | KeyBlock,
        passphrase: SecureBytes | str | bytes,
        public_key: bytes | str | KeyBlock | None = None,
    ) -> DecryptionResult:
        """
        Decrypt a message and verify its signatures.

        Raises:
            PGPDecryptError: Subclass naming the failing stage.
        """
        return self._orchestrator.decrypt_and_verify(encrypted, private_key, passphrase, public_key)

    async def decrypt_async(
        self,
        encrypted: bytes | str,
        private_key: bytes | str | KeyBlock,
        passphrase: SecureBytes | str | bytes,
        public_key: bytes | str | KeyBlock | None = None,
    ) -> DecryptionResult:
        """
        Run decrypt() in a worker thread, bounded by ``config.timeout``.

        The worker thread cannot be interrupted; on timeout it finishes in the
        background and its result is discarded.

        Raises:
            DecryptionTimeoutError: If the deadline elapsed.
            PGPDecryptError: Subclass naming the failing stage.
        """
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.decrypt, encrypted, private_key, passphrase, public_key),
                timeout=self._config.timeout,
            )
        except TimeoutError as e:
            logger.warning("Decryption timed out", timeout=self._config.timeout)
            msg = f"Decryption did not finish within {self._config.timeout} seconds"
            raise DecryptionTimeoutError(msg, timeout=self._config.timeout) from e

    def decrypt_file(
        self,
        source: FileSource,
        output: Path | str | None = None,
        *,
        passphrase: SecureBytes | str | bytes | None = None,
    ) -> DecryptionResult:
        """
        Decrypt a message stored on disk.

        Args:
            source: Input file locations.
            output: Where to write the plaintext; nothing is written when None.
            passphrase: Passphrase, when ``source`` has no passphrase file.

        Returns:
            DecryptionResult. Plaintext is written only for trusted results or
            when the unsafe path is enabled.
        """
        owned = passphrase is None
        secret = source.read_passphrase() if passphrase is None else passphrase
        try:
            result = self.decrypt(
                source.read_message(max_size=self._config.max_input_size),
                source.read_private_key(),
                secret,
                source.read_public_key(),
            )
        finally:
            if owned:
                secret.clear()

        if output is not None and (result.is_trusted or self._config.allow_unsafe_plaintext):
            write_plaintext(output, result.plaintext)
        return result

    def error_message(self, error: PGPDecryptError) -> str:
        """User-facing text for ``error``; detailed only when the config allows it."""
        return public_message(error, detailed=self._config.expose_error_detail)
