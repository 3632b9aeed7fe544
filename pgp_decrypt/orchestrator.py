"""
Decryption orchestrator.

Runs one decrypt-and-verify operation through its stages:

    START -> PACKETS_PARSED -> SESSION_KEY_RESOLVED -> DECRYPTED
          -> (VERIFIED | VERIFICATION_SKIPPED) -> DONE

with a single FAILED exit carrying the originating stage's error. Nothing is
retried. The passphrase, unlocked private keys and the session key belong to
one operation and are cleared on every exit path.
"""

from dataclasses import dataclass, field

import structlog
from cryptography.exceptions import UnsupportedAlgorithm

from pgp_decrypt.config import DecryptConfig
from pgp_decrypt.core.secure_bytes import SecureBytes, as_secure_bytes
from pgp_decrypt.crypto.armor import unarmor
from pgp_decrypt.crypto.decryptor import SymmetricDecryptor, parse_seipd_packet
from pgp_decrypt.crypto.keys import KeyBlock, PrivateKey, parse_key_block
from pgp_decrypt.crypto.message import MessageContent, parse_message_body
from pgp_decrypt.crypto.packets import read_packets
from pgp_decrypt.crypto.session_key import SessionKeyResolver, parse_pkesk_packet
from pgp_decrypt.crypto.verifier import SignatureVerifier, aggregate_outcome
from pgp_decrypt.exceptions import (
    IntegrityError,
    KeyParseError,
    MalformedPacketError,
    PGPDecryptError,
    SessionKeyError,
    UnsupportedAlgorithmError,
)
from pgp_decrypt.models.crypto import PKESKPacket, SessionKey, SymmetricAlgorithm
from pgp_decrypt.models.keys import KeyUsage
from pgp_decrypt.models.packets import Packet, PacketTag
from pgp_decrypt.models.result import (
    DecryptionResult,
    DecryptionState,
    SignatureCheck,
    VerificationOutcome,
)

logger = structlog.get_logger(__name__)

_ENCRYPTED_DATA_TAGS = frozenset({PacketTag.SEIPD, PacketTag.SED, PacketTag.AEAD_ENCRYPTED})

# Error type used when a non-library exception escapes a stage
_STAGE_ERRORS: dict[DecryptionState, type[PGPDecryptError]] = {
    DecryptionState.START: MalformedPacketError,
    DecryptionState.PACKETS_PARSED: SessionKeyError,
    DecryptionState.SESSION_KEY_RESOLVED: IntegrityError,
    DecryptionState.DECRYPTED: MalformedPacketError,
}


@dataclass(kw_only=True)
class _EncryptedMessage:
    pkesks: list[PKESKPacket]
    encrypted: Packet
    symmetric_hint: SymmetricAlgorithm | None = None


@dataclass
class _Operation:
    """Per-call state; owns the sensitive objects until cleanup."""

    state: DecryptionState = DecryptionState.START
    passphrase: SecureBytes | None = None
    owns_passphrase: bool = False
    unlocked: list[PrivateKey] = field(default_factory=list)
    session_key: SessionKey | None = None

    def advance(self, state: DecryptionState) -> None:
        logger.debug("Decryption state changed", previous=self.state.value, state=state.value)
        self.state = state

    def cleanup(self) -> None:
        if self.session_key is not None:
            self.session_key.clear()
        for key in self.unlocked:
            key.clear()
        self.unlocked.clear()
        if self.passphrase is not None and self.owns_passphrase:
            self.passphrase.clear()


class DecryptionOrchestrator:
    """
    Decrypts a message for one recipient key and verifies its signatures.

    The orchestrator holds configuration and stateless collaborators only, so a
    single instance may serve concurrent operations.

    Example:
        orchestrator = DecryptionOrchestrator(DecryptConfig())
        result = orchestrator.decrypt_and_verify(message, private_key, "passphrase")
    """

    def __init__(
        self,
        config: DecryptConfig | None = None,
        *,
        resolver: SessionKeyResolver | None = None,
        verifier: SignatureVerifier | None = None,
    ) -> None:
        """
        Args:
            config: Limits and safety switches; defaults to DecryptConfig().
            resolver: Session key resolver.
            verifier: Signature verifier.
        """
        self._config = config or DecryptConfig()
        self._resolver = resolver or SessionKeyResolver()
        self._verifier = verifier or SignatureVerifier()
        self._decryptor = SymmetricDecryptor(allow_unsafe=self._config.allow_unsafe_plaintext)

    @property
    def config(self) -> DecryptConfig:
        return self._config

    def decrypt_and_verify(
        self,
        encrypted: bytes | str,
        private_key: bytes | str | KeyBlock,
        passphrase: SecureBytes | str | bytes,
        public_key: bytes | str | KeyBlock | None = None,
    ) -> DecryptionResult:
        """
        Decrypt ``encrypted`` and verify embedded signatures.

        Args:
            encrypted: Armored or binary OpenPGP message.
            private_key: Armored or binary secret key block.
            passphrase: Passphrase for the secret key. A SecureBytes passed in
                stays owned by the caller; other types are wiped after use.
            public_key: Optional key block holding the expected signer.

        Returns:
            DecryptionResult with integrity and verification flags.

        Raises:
            MalformedPacketError: Structurally invalid message.
            KeyParseError: Invalid key block or no usable decryption key.
            PassphraseError: Passphrase does not unlock the recipient key.
            SessionKeyError: No PKESK for the key, or session key checksum failure.
            IntegrityError: MDC/AEAD check failed and the unsafe path is off.
            UnsupportedAlgorithmError: Unimplemented algorithm or packet version.
        """
        operation = _Operation()
        operation.owns_passphrase = not isinstance(passphrase, SecureBytes)
        operation.passphrase = as_secure_bytes(passphrase)
        try:
            result = self._run(operation, encrypted, private_key, public_key)
        except PGPDecryptError as e:
            self._log_failure(operation, e)
            raise
        except (ValueError, OverflowError, UnsupportedAlgorithm) as e:
            error_type = _STAGE_ERRORS.get(operation.state, MalformedPacketError)
            msg = f"Unexpected failure after {operation.state.value}: {e}"
            wrapped = error_type(msg)
            self._log_failure(operation, wrapped)
            raise wrapped from e
        finally:
            operation.cleanup()
        return result

    def _run(
        self,
        operation: _Operation,
        encrypted: bytes | str,
        private_key: bytes | str | KeyBlock,
        public_key: bytes | str | KeyBlock | None,
    ) -> DecryptionResult:
        message = self._parse_message(encrypted)
        operation.advance(DecryptionState.PACKETS_PARSED)

        block = private_key if isinstance(private_key, KeyBlock) else parse_key_block(private_key)
        session_key, recipient = self._resolve_session_key(operation, message, block)
        operation.advance(DecryptionState.SESSION_KEY_RESOLVED)

        inner, integrity_ok = self._decryptor.decrypt(message.encrypted, session_key)
        session_algorithm = session_key.algorithm
        session_key.clear()
        operation.advance(DecryptionState.DECRYPTED)

        content = self._parse_content(inner, integrity_ok)
        if content is None:
            # Unsafe path only: the inner stream could not be parsed
            operation.advance(DecryptionState.VERIFICATION_SKIPPED)
            operation.advance(DecryptionState.DONE)
            return DecryptionResult(
                plaintext=inner,
                integrity_ok=False,
                verification=VerificationOutcome.SKIPPED,
                session_algorithm=session_algorithm,
                recipient_key_id=recipient.key_id,
            )

        checks, outcome = self._verify(operation, content, public_key)
        valid = next((c for c in checks if c.outcome is VerificationOutcome.VALID), None)
        operation.advance(DecryptionState.DONE)

        literal = content.literal
        logger.info(
            "Message decrypted",
            recipient=recipient.key_id,
            size=len(literal.data),
            integrity_ok=integrity_ok,
            verification=outcome.value,
        )
        return DecryptionResult(
            plaintext=literal.data,
            integrity_ok=integrity_ok,
            verification=outcome,
            signer_key_id=valid.signer_key_id if valid is not None else None,
            signatures=checks,
            filename=literal.filename or None,
            literal_format=chr(literal.format),
            modification_time=literal.modification_time,
            session_algorithm=session_algorithm,
            recipient_key_id=recipient.key_id,
        )

    def _parse_message(self, encrypted: bytes | str) -> _EncryptedMessage:
        if len(encrypted) > self._config.max_input_size:
            msg = f"Message exceeds maximum input size of {self._config.max_input_size} bytes"
            raise MalformedPacketError(msg)

        pkesks: list[PKESKPacket] = []
        encrypted_packet = None
        for packet in read_packets(unarmor(encrypted)):
            tag = packet.packet_tag
            if tag == PacketTag.PKESK:
                try:
                    pkesks.append(parse_pkesk_packet(packet))
                except UnsupportedAlgorithmError as e:
                    logger.warning("Skipping unsupported session key packet", error=str(e))
            elif tag in _ENCRYPTED_DATA_TAGS:
                encrypted_packet = packet
                break
            else:
                logger.debug("Ignoring packet before encrypted data", packet=packet.name)

        if encrypted_packet is None:
            msg = "Message contains no encrypted data packet"
            raise MalformedPacketError(msg)
        if not pkesks:
            msg = "Message has no public-key encrypted session key"
            raise SessionKeyError(msg)

        hint = None
        if encrypted_packet.packet_tag == PacketTag.SEIPD:
            seipd = parse_seipd_packet(encrypted_packet)
            hint = seipd.cipher
        logger.debug("Message packets parsed", recipients=len(pkesks), encrypted=encrypted_packet.name)
        return _EncryptedMessage(pkesks=pkesks, encrypted=encrypted_packet, symmetric_hint=hint)

    def _resolve_session_key(
        self, operation: _Operation, message: _EncryptedMessage, block: KeyBlock
    ) -> tuple[SessionKey, PrivateKey]:
        if not block.has_secret:
            msg = "Key block holds no secret key material"
            raise KeyParseError(msg)
        eligible = block.select(KeyUsage.ENCRYPT, secret=True)
        if not eligible:
            msg = "No secret key in block is usable for encryption"
            raise KeyParseError(msg)

        attempts = [
            (pkesk, key)
            for pkesk in message.pkesks
            for key in eligible
            if pkesk.is_wildcard or _is_addressed_to(pkesk, key)
        ]
        if not attempts:
            recipients = tuple(p.key_id_hex for p in message.pkesks)
            msg = "Message is not encrypted to any of the supplied keys"
            raise SessionKeyError(msg, recipients=recipients)

        last_error: SessionKeyError | None = None
        for pkesk, key in attempts:
            if not key.is_unlocked:
                key.unlock(operation.passphrase, max_s2k_count=self._config.max_s2k_count)
                operation.unlocked.append(key)
            try:
                session_key = self._resolver.resolve(pkesk, key, symmetric_hint=message.symmetric_hint)
            except SessionKeyError as e:
                if not pkesk.is_wildcard:
                    raise
                last_error = e
                continue
            operation.session_key = session_key
            if key in operation.unlocked:
                key.clear()
            logger.debug("Session key resolved", key_id=key.key_id, algorithm=session_key.algorithm.name)
            return session_key, key

        raise last_error

    def _parse_content(self, inner: bytes, integrity_ok: bool) -> MessageContent | None:
        try:
            return parse_message_body(
                inner,
                max_decompressed_size=self._config.max_decompressed_size,
                max_nesting_depth=self._config.max_nesting_depth,
            )
        except (MalformedPacketError, UnsupportedAlgorithmError) as e:
            if integrity_ok:
                raise
            logger.warning("Unauthenticated plaintext could not be parsed", error=str(e))
            return None

    def _verify(
        self,
        operation: _Operation,
        content: MessageContent,
        public_key: bytes | str | KeyBlock | None,
    ) -> tuple[tuple[SignatureCheck, ...], VerificationOutcome]:
        if not content.is_signed:
            operation.advance(DecryptionState.VERIFICATION_SKIPPED)
            return (), VerificationOutcome.UNSIGNED
        if public_key is None or not self._config.verify_signatures:
            operation.advance(DecryptionState.VERIFICATION_SKIPPED)
            return (), VerificationOutcome.SKIPPED

        block = public_key if isinstance(public_key, KeyBlock) else parse_key_block(public_key)
        checks = self._verifier.verify_all(content.signatures, content.literal.data, block.public_keys())
        checks += tuple(
            SignatureCheck(outcome=VerificationOutcome.INVALID, issuer_key_id=None, reason=reason)
            for reason in content.unsupported_signatures
        )
        operation.advance(DecryptionState.VERIFIED)
        return checks, aggregate_outcome(checks)

    @staticmethod
    def _log_failure(operation: _Operation, error: PGPDecryptError) -> None:
        logger.warning(
            "Decryption failed",
            state=operation.state.value,
            stage=error.stage,
            error_type=type(error).__name__,
            **{k: v for k, v in error.context.items() if k in ("packet_tag", "key_id")},
        )
        operation.state = DecryptionState.FAILED


def decrypt_and_verify(
    encrypted: bytes | str,
    private_key: bytes | str | KeyBlock,
    passphrase: SecureBytes | str | bytes,
    public_key: bytes | str | KeyBlock | None = None,
    *,
    config: DecryptConfig | None = None,
) -> DecryptionResult:
    """Decrypt and verify one message; see DecryptionOrchestrator.decrypt_and_verify."""
    return DecryptionOrchestrator(config).decrypt_and_verify(encrypted, private_key, passphrase, public_key)



def _is_addressed_to(pkesk: PKESKPacket, key: PrivateKey) -> bool:
    if pkesk.fingerprint is not None:
        return key.matches(pkesk.fingerprint)
    return key.key_id_bytes == pkesk.key_id
