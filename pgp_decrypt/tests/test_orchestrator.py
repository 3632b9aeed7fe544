from collections.abc import Callable
from typing import Any
from unittest.mock import Mock

import pytest

from pgp_decrypt.config import DecryptConfig
from pgp_decrypt.core.secure_bytes import SecureBytes
from pgp_decrypt.crypto.keys import PrivateKey, parse_key_block
from pgp_decrypt.crypto.packets import read_packets
from pgp_decrypt.crypto.session_key import SessionKeyResolver
from pgp_decrypt.exceptions import (
    IntegrityError,
    KeyParseError,
    MalformedPacketError,
    PassphraseError,
    PGPDecryptError,
    SessionKeyError,
)
from pgp_decrypt.models.crypto import SessionKey, SymmetricAlgorithm
from pgp_decrypt.models.keys import KeyUsage
from pgp_decrypt.models.result import VerificationOutcome
from pgp_decrypt.orchestrator import DecryptionOrchestrator, decrypt_and_verify
from pgp_decrypt.tests import builders
from pgp_decrypt.tests.builders import AES_128, Certificate, CertificateBuilder, flip_bit
from pgp_decrypt.tests.constants import MESSAGE, PASSPHRASE, WRONG_PASSPHRASE

MakeMessage = Callable[..., bytes]


class _RecordingResolver(SessionKeyResolver):
    """Keeps every session key it hands out so tests can check it was wiped."""

    def __init__(self) -> None:
        super().__init__()
        self.resolved: list[SessionKey] = []

    def resolve(self, *args: Any, **kwargs: Any) -> SessionKey:
        session_key = super().resolve(*args, **kwargs)
        self.resolved.append(session_key)
        return session_key


@pytest.fixture
def orchestrator() -> DecryptionOrchestrator:
    return DecryptionOrchestrator()


@pytest.fixture
def unsafe_orchestrator() -> DecryptionOrchestrator:
    return DecryptionOrchestrator(DecryptConfig(allow_unsafe_plaintext=True))


@pytest.mark.parametrize("cert_name", ["rsa_cert", "ecc_cert", "nist_cert", "native_cert"])
def test_decrypt_and_verify_round_trip_for_each_key_type(
    cert_name: str,
    request: pytest.FixtureRequest,
    make_message: MakeMessage,
    sender_cert: Certificate,
    orchestrator: DecryptionOrchestrator,
) -> None:
    cert = request.getfixturevalue(cert_name)

    result = orchestrator.decrypt_and_verify(
        make_message(recipient=cert), cert.secret(), PASSPHRASE, sender_cert.public()
    )

    assert result.plaintext == MESSAGE
    assert result.integrity_ok is True
    assert result.verification is VerificationOutcome.VALID
    assert result.signer_key_id == sender_cert.primary.key_id_hex
    assert result.recipient_key_id == cert.encryption_key.key_id_hex
    assert result.session_algorithm is SymmetricAlgorithm.AES_256
    assert result.is_trusted is True


@pytest.mark.parametrize("mode", ["seipd2-ocb", "seipd2-gcm"])
@pytest.mark.parametrize("cert_name", ["rsa_cert", "ecc_cert", "native_cert"])
def test_decrypt_and_verify_handles_aead_messages(
    mode: str,
    cert_name: str,
    request: pytest.FixtureRequest,
    make_message: MakeMessage,
    sender_cert: Certificate,
    orchestrator: DecryptionOrchestrator,
) -> None:
    cert = request.getfixturevalue(cert_name)
    message = make_message(recipient=cert, mode=mode, cipher=AES_128)

    result = orchestrator.decrypt_and_verify(message, cert.secret(), PASSPHRASE, sender_cert.public())

    assert result.plaintext == MESSAGE
    assert result.integrity_ok is True
    assert result.verification is VerificationOutcome.VALID
    assert result.session_algorithm is SymmetricAlgorithm.AES_128


def test_decrypt_and_verify_accepts_armored_inputs(
    ecc_cert: Certificate,
    sender_cert: Certificate,
    make_message: MakeMessage,
    orchestrator: DecryptionOrchestrator,
) -> None:
    message = builders.armor(make_message())

    result = orchestrator.decrypt_and_verify(
        message,
        ecc_cert.builder.secret_armored(PASSPHRASE),
        PASSPHRASE.decode(),
        sender_cert.builder.public_armored(),
    )

    assert result.plaintext == MESSAGE
    assert result.verification is VerificationOutcome.VALID


def test_decrypt_and_verify_reads_compressed_content(
    ecc_cert: Certificate, sender_cert: Certificate, make_message: MakeMessage
) -> None:
    message = make_message(compress=True)

    result = decrypt_and_verify(message, ecc_cert.secret(), PASSPHRASE, sender_cert.public())

    assert result.plaintext == MESSAGE
    assert result.verification is VerificationOutcome.VALID


def test_decrypt_and_verify_reports_literal_metadata(
    ecc_cert: Certificate, orchestrator: DecryptionOrchestrator
) -> None:
    inner = builders.literal(
        b"a,b\n1,2\n", filename="report.csv", data_format=b"t", timestamp=builders.CREATED
    )
    message = builders.encrypt_message(inner, ecc_cert.encryption_key)

    result = orchestrator.decrypt_and_verify(message, ecc_cert.secret(), PASSPHRASE)

    assert result.filename == "report.csv"
    assert result.literal_format == "t"
    assert result.modification_time is not None
    assert int(result.modification_time.timestamp()) == builders.CREATED


def test_decrypt_and_verify_unsigned_message(
    ecc_cert: Certificate, sender_cert: Certificate, make_message: MakeMessage
) -> None:
    message = make_message(signed=False)

    result = decrypt_and_verify(message, ecc_cert.secret(), PASSPHRASE, sender_cert.public())

    assert result.verification is VerificationOutcome.UNSIGNED
    assert result.signatures == ()
    assert result.is_signed is False


def test_decrypt_and_verify_skips_verification_without_public_key(
    ecc_cert: Certificate, make_message: MakeMessage
) -> None:
    result = decrypt_and_verify(make_message(), ecc_cert.secret(), PASSPHRASE)

    assert result.plaintext == MESSAGE
    assert result.verification is VerificationOutcome.SKIPPED
    assert result.signer_key_id is None


def test_decrypt_and_verify_skips_verification_when_disabled(
    ecc_cert: Certificate, sender_cert: Certificate, make_message: MakeMessage
) -> None:
    config = DecryptConfig(verify_signatures=False)

    result = decrypt_and_verify(
        make_message(), ecc_cert.secret(), PASSPHRASE, sender_cert.public(), config=config
    )

    assert result.verification is VerificationOutcome.SKIPPED


def test_decrypt_and_verify_reports_unknown_signer(
    ecc_cert: Certificate, stranger_cert: Certificate, make_message: MakeMessage
) -> None:
    result = decrypt_and_verify(make_message(), ecc_cert.secret(), PASSPHRASE, stranger_cert.public())

    assert result.plaintext == MESSAGE
    assert result.verification is VerificationOutcome.SIGNER_UNKNOWN
    assert result.signer_key_id is None
    assert result.is_trusted is True


def test_decrypt_and_verify_reports_invalid_signature(
    ecc_cert: Certificate, sender_cert: Certificate, orchestrator: DecryptionOrchestrator
) -> None:
    # Signature made over different content than the literal packet carries
    inner = (
        builders.one_pass_signature(sender_cert.primary)
        + builders.literal(MESSAGE)
        + builders.document_signature(sender_cert.primary, b"something else")
    )
    message = builders.encrypt_message(inner, ecc_cert.encryption_key)

    result = orchestrator.decrypt_and_verify(message, ecc_cert.secret(), PASSPHRASE, sender_cert.public())

    assert result.integrity_ok is True
    assert result.verification is VerificationOutcome.INVALID
    assert result.is_trusted is False
    assert result.signatures[0].reason is not None


def test_decrypt_and_verify_reports_unsupported_signature_as_invalid(
    ecc_cert: Certificate, sender_cert: Certificate, orchestrator: DecryptionOrchestrator
) -> None:
    inner = builders.literal(MESSAGE) + builders.packet(2, bytes([5]) + bytes(20))
    message = builders.encrypt_message(inner, ecc_cert.encryption_key)

    result = orchestrator.decrypt_and_verify(message, ecc_cert.secret(), PASSPHRASE, sender_cert.public())

    assert result.verification is VerificationOutcome.INVALID
    assert "Unsupported signature version" in result.signatures[0].reason


def test_decrypt_and_verify_reports_truncated_signature_as_invalid(
    ecc_cert: Certificate, sender_cert: Certificate, orchestrator: DecryptionOrchestrator
) -> None:
    inner = builders.literal(MESSAGE) + builders.packet(2, bytes([4, 0, 22, 8, 0, 5, 1]))
    message = builders.encrypt_message(inner, ecc_cert.encryption_key)

    result = orchestrator.decrypt_and_verify(message, ecc_cert.secret(), PASSPHRASE, sender_cert.public())

    assert result.plaintext == MESSAGE
    assert result.integrity_ok is True
    assert result.verification is VerificationOutcome.INVALID
    assert "Packet body truncated" in result.signatures[0].reason


def test_decrypt_and_verify_raises_on_wrong_passphrase(
    ecc_cert: Certificate, make_message: MakeMessage, orchestrator: DecryptionOrchestrator
) -> None:
    with pytest.raises(PassphraseError) as exc_info:
        orchestrator.decrypt_and_verify(make_message(), ecc_cert.secret(), WRONG_PASSPHRASE)

    assert exc_info.value.key_id == ecc_cert.subkey.key_id_hex


@pytest.mark.parametrize("wrong", [b"", PASSPHRASE[:-1], PASSPHRASE + b"x", PASSPHRASE.upper(), b"\x00"])
def test_decrypt_and_verify_rejects_every_wrong_passphrase(
    wrong: bytes, ecc_cert: Certificate, make_message: MakeMessage, orchestrator: DecryptionOrchestrator
) -> None:
    with pytest.raises(PassphraseError):
        orchestrator.decrypt_and_verify(make_message(), ecc_cert.secret(), wrong)


def test_decrypt_and_verify_raises_when_not_a_recipient(
    ecc_cert: Certificate, stranger_cert: Certificate, make_message: MakeMessage
) -> None:
    with pytest.raises(SessionKeyError, match="not encrypted to any of the supplied keys") as exc_info:
        decrypt_and_verify(make_message(), stranger_cert.secret(), PASSPHRASE)

    assert exc_info.value.recipients == (ecc_cert.subkey.key_id_hex,)


def test_decrypt_and_verify_matches_v6_recipient_by_full_fingerprint(
    ecc_cert: Certificate, make_message: MakeMessage
) -> None:
    message = make_message(mode="seipd2-ocb", signed=False)
    # First fingerprint octet lies outside the 8-octet key id of a v4 key
    position = message.index(ecc_cert.encryption_key.fingerprint)

    result = decrypt_and_verify(message, ecc_cert.secret(), PASSPHRASE)
    with pytest.raises(SessionKeyError, match="not encrypted to any of the supplied keys"):
        decrypt_and_verify(flip_bit(message, position), ecc_cert.secret(), PASSPHRASE)

    assert result.plaintext == MESSAGE


def test_decrypt_and_verify_raises_on_session_key_checksum_failure(
    rsa_cert: Certificate, make_message: MakeMessage
) -> None:
    message = make_message(recipient=rsa_cert, corrupt_checksum=True)

    with pytest.raises(SessionKeyError, match="checksum mismatch"):
        decrypt_and_verify(message, rsa_cert.secret(), PASSPHRASE)


def test_decrypt_and_verify_raises_on_tampered_ciphertext(
    ecc_cert: Certificate, make_message: MakeMessage, orchestrator: DecryptionOrchestrator
) -> None:
    message = make_message()

    with pytest.raises(IntegrityError):
        orchestrator.decrypt_and_verify(flip_bit(message, len(message) - 1), ecc_cert.secret(), PASSPHRASE)


@pytest.mark.parametrize("mode", ["seipd1", "seipd2-ocb", "seipd2-gcm"])
def test_decrypt_and_verify_never_trusts_a_flipped_encrypted_data_bit(
    mode: str, ecc_cert: Certificate, unsafe_orchestrator: DecryptionOrchestrator
) -> None:
    message = builders.encrypt_message(builders.literal(b"sweep" * 20), ecc_cert.encryption_key, mode=mode)
    secret = ecc_cert.secret()
    start = read_packets(message)[-1].offset

    for position in range(start, len(message)):
        tampered = flip_bit(message, position)
        with pytest.raises(PGPDecryptError):
            decrypt_and_verify(tampered, secret, PASSPHRASE)

        try:
            result = unsafe_orchestrator.decrypt_and_verify(tampered, secret, PASSPHRASE)
        except PGPDecryptError:
            continue
        assert result.integrity_ok is False, f"flip at offset {position} passed integrity"


def test_decrypt_and_verify_unsafe_path_flags_tampered_plaintext(
    ecc_cert: Certificate,
    sender_cert: Certificate,
    make_message: MakeMessage,
    unsafe_orchestrator: DecryptionOrchestrator,
) -> None:
    message = make_message()

    result = unsafe_orchestrator.decrypt_and_verify(
        flip_bit(message, len(message) - 1), ecc_cert.secret(), PASSPHRASE, sender_cert.public()
    )

    assert result.plaintext == MESSAGE
    assert result.integrity_ok is False
    assert result.is_trusted is False


def test_decrypt_and_verify_unsafe_path_returns_unparseable_plaintext(
    ecc_cert: Certificate, unsafe_orchestrator: DecryptionOrchestrator
) -> None:
    message = builders.encrypt_message(b"\x00not a packet stream", ecc_cert.encryption_key)

    result = unsafe_orchestrator.decrypt_and_verify(
        flip_bit(message, len(message) - 1), ecc_cert.secret(), PASSPHRASE
    )

    assert result.plaintext == b"\x00not a packet stream"
    assert result.integrity_ok is False
    assert result.verification is VerificationOutcome.SKIPPED


def test_decrypt_and_verify_rejects_unparseable_authenticated_plaintext(
    ecc_cert: Certificate, unsafe_orchestrator: DecryptionOrchestrator
) -> None:
    message = builders.encrypt_message(b"\x00not a packet stream", ecc_cert.encryption_key)

    with pytest.raises(MalformedPacketError):
        unsafe_orchestrator.decrypt_and_verify(message, ecc_cert.secret(), PASSPHRASE)


def test_decrypt_and_verify_refuses_legacy_sed_by_default(
    ecc_cert: Certificate, make_message: MakeMessage, orchestrator: DecryptionOrchestrator
) -> None:
    with pytest.raises(IntegrityError):
        orchestrator.decrypt_and_verify(make_message(mode="sed"), ecc_cert.secret(), PASSPHRASE)


def test_decrypt_and_verify_flags_legacy_sed_on_unsafe_path(
    ecc_cert: Certificate,
    sender_cert: Certificate,
    make_message: MakeMessage,
    unsafe_orchestrator: DecryptionOrchestrator,
) -> None:
    result = unsafe_orchestrator.decrypt_and_verify(
        make_message(mode="sed"), ecc_cert.secret(), PASSPHRASE, sender_cert.public()
    )

    assert result.plaintext == MESSAGE
    assert result.integrity_ok is False
    assert result.verification is VerificationOutcome.VALID
    assert result.is_trusted is False


def test_decrypt_and_verify_raises_on_truncated_message(
    ecc_cert: Certificate, make_message: MakeMessage, orchestrator: DecryptionOrchestrator
) -> None:
    with pytest.raises(MalformedPacketError, match="exceeds remaining"):
        orchestrator.decrypt_and_verify(make_message()[:-10], ecc_cert.secret(), PASSPHRASE)


def test_decrypt_and_verify_enforces_max_input_size(ecc_cert: Certificate, make_message: MakeMessage) -> None:
    config = DecryptConfig(max_input_size=64)

    with pytest.raises(MalformedPacketError, match="maximum input size of 64 bytes"):
        decrypt_and_verify(make_message(), ecc_cert.secret(), PASSPHRASE, config=config)


def test_decrypt_and_verify_requires_encrypted_data(
    ecc_cert: Certificate, orchestrator: DecryptionOrchestrator
) -> None:
    with pytest.raises(MalformedPacketError, match="no encrypted data packet"):
        orchestrator.decrypt_and_verify(builders.literal(MESSAGE), ecc_cert.secret(), PASSPHRASE)


def test_decrypt_and_verify_requires_session_key_packet(
    ecc_cert: Certificate, orchestrator: DecryptionOrchestrator
) -> None:
    message = builders.packet(18, builders.seipd_v1(builders.literal(MESSAGE), bytes(32)))

    with pytest.raises(SessionKeyError, match="no public-key encrypted session key"):
        orchestrator.decrypt_and_verify(message, ecc_cert.secret(), PASSPHRASE)


def test_decrypt_and_verify_rejects_public_key_block_as_private_key(
    ecc_cert: Certificate, make_message: MakeMessage, orchestrator: DecryptionOrchestrator
) -> None:
    with pytest.raises(KeyParseError, match="holds no secret key material"):
        orchestrator.decrypt_and_verify(make_message(), ecc_cert.public(), PASSPHRASE)


def test_decrypt_and_verify_rejects_block_with_stub_encryption_key(
    ecc_cert: Certificate, make_message: MakeMessage, orchestrator: DecryptionOrchestrator
) -> None:
    with pytest.raises(KeyParseError, match="usable for encryption"):
        orchestrator.decrypt_and_verify(make_message(), ecc_cert.secret(stub_subkeys=True), PASSPHRASE)


def test_decrypt_and_verify_tries_every_key_for_wildcard_recipient(
    orchestrator: DecryptionOrchestrator,
) -> None:
    first = builders.cv25519_key()
    second = builders.cv25519_key()
    builder = CertificateBuilder(primary=builders.eddsa_key()).add_subkey(first).add_subkey(second)
    message = builders.encrypt_message(builders.literal(MESSAGE), first, wildcard=True)

    result = orchestrator.decrypt_and_verify(message, builder.secret_bytes(PASSPHRASE), PASSPHRASE)

    assert result.plaintext == MESSAGE
    assert result.recipient_key_id == first.key_id_hex


def test_decrypt_and_verify_uses_listed_subkey_over_newer_one(orchestrator: DecryptionOrchestrator) -> None:
    older = builders.cv25519_key()
    newer = builders.cv25519_key(created=builders.CREATED + 100)
    builder = CertificateBuilder(primary=builders.eddsa_key()).add_subkey(older).add_subkey(newer)
    message = builders.encrypt_message(builders.literal(MESSAGE), older)

    result = orchestrator.decrypt_and_verify(message, builder.secret_bytes(PASSPHRASE), PASSPHRASE)

    assert result.recipient_key_id == older.key_id_hex


def test_decrypt_and_verify_skips_revoked_subkey(orchestrator: DecryptionOrchestrator) -> None:
    subkey = builders.cv25519_key()
    builder = CertificateBuilder(primary=builders.eddsa_key()).add_subkey(subkey, revoked=True)
    message = builders.encrypt_message(builders.literal(MESSAGE), subkey)

    with pytest.raises(KeyParseError, match="usable for encryption"):
        orchestrator.decrypt_and_verify(message, builder.secret_bytes(PASSPHRASE), PASSPHRASE)


def test_decrypt_and_verify_clears_session_key_and_unlocked_keys(
    ecc_cert: Certificate, make_message: MakeMessage
) -> None:
    resolver = _RecordingResolver()
    block = parse_key_block(ecc_cert.secret())

    DecryptionOrchestrator(resolver=resolver).decrypt_and_verify(make_message(), block, PASSPHRASE)

    assert len(resolver.resolved) == 1
    assert resolver.resolved[0].is_cleared is True
    assert not any(isinstance(k, PrivateKey) and k.is_unlocked for k in block.keys)


def test_decrypt_and_verify_clears_unlocked_keys_on_failure(
    ecc_cert: Certificate, make_message: MakeMessage, orchestrator: DecryptionOrchestrator
) -> None:
    message = make_message()
    block = parse_key_block(ecc_cert.secret())

    with pytest.raises(IntegrityError):
        orchestrator.decrypt_and_verify(flip_bit(message, len(message) - 1), block, PASSPHRASE)

    assert not any(isinstance(k, PrivateKey) and k.is_unlocked for k in block.keys)


def test_decrypt_and_verify_leaves_caller_unlocked_key_alone(
    ecc_cert: Certificate, make_message: MakeMessage, orchestrator: DecryptionOrchestrator
) -> None:
    block = parse_key_block(ecc_cert.secret())
    key = block.select(KeyUsage.ENCRYPT, secret=True)[0]
    key.unlock(PASSPHRASE)

    result = orchestrator.decrypt_and_verify(make_message(), block, WRONG_PASSPHRASE)

    assert result.plaintext == MESSAGE
    assert key.is_unlocked is True
    key.clear()


def test_decrypt_and_verify_does_not_clear_caller_passphrase(
    ecc_cert: Certificate, make_message: MakeMessage, orchestrator: DecryptionOrchestrator
) -> None:
    passphrase = SecureBytes(PASSPHRASE)

    orchestrator.decrypt_and_verify(make_message(), ecc_cert.secret(), passphrase)

    assert passphrase.is_cleared is False
    assert passphrase == PASSPHRASE
    passphrase.clear()


def test_decrypt_and_verify_wraps_unexpected_errors_by_stage(
    ecc_cert: Certificate, make_message: MakeMessage
) -> None:
    resolver = Mock(spec=SessionKeyResolver)
    resolver.resolve.side_effect = ValueError("boom")

    with pytest.raises(SessionKeyError, match="Unexpected failure after packets_parsed: boom"):
        DecryptionOrchestrator(resolver=resolver).decrypt_and_verify(
            make_message(), ecc_cert.secret(), PASSPHRASE
        )


def test_orchestrator_exposes_config() -> None:
    config = DecryptConfig(max_nesting_depth=2)

    assert DecryptionOrchestrator(config).config is config
