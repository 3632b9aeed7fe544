from collections.abc import Callable

import pytest

from pgp_decrypt.tests import builders
from pgp_decrypt.tests.builders import FLAG_CERTIFY, FLAG_SIGN, Certificate, CertificateBuilder
from pgp_decrypt.tests.constants import MESSAGE


@pytest.fixture(scope="session")
def rsa_cert() -> Certificate:
    return Certificate.create(builders.rsa_key(), builders.rsa_key(), "Alice <alice@example.com>")


@pytest.fixture(scope="session")
def ecc_cert() -> Certificate:
    return Certificate.create(builders.eddsa_key(), builders.cv25519_key(), "Bob <bob@example.com>")


@pytest.fixture(scope="session")
def nist_cert() -> Certificate:
    return Certificate.create(
        builders.p256_ecdsa_key(), builders.p256_ecdh_key(), "Carol <carol@example.com>"
    )


@pytest.fixture(scope="session")
def native_cert() -> Certificate:
    return Certificate.create(builders.ed25519_key(), builders.x25519_key(), "Dave <dave@example.com>")


@pytest.fixture(scope="session")
def sender_cert() -> Certificate:
    """Signing-only certificate of the message author."""
    primary = builders.eddsa_key()
    builder = CertificateBuilder(
        primary=primary, user_id="Sender <sender@example.com>", primary_flags=FLAG_CERTIFY | FLAG_SIGN
    )
    return Certificate(builder=builder, primary=primary, subkey=None)


@pytest.fixture(scope="session")
def stranger_cert() -> Certificate:
    return Certificate.create(builders.eddsa_key(), builders.cv25519_key(), "Eve <eve@example.com>")


@pytest.fixture
def make_message(ecc_cert: Certificate, sender_cert: Certificate) -> Callable[..., bytes]:
    """Encrypted message for ``recipient``, signed by the sender unless ``signed`` is False."""

    def _make(
        data: bytes = MESSAGE,
        *,
        recipient: Certificate | None = None,
        signer: Certificate | None = None,
        signed: bool = True,
        compress: bool = False,
        **kwargs: object,
    ) -> bytes:
        recipient = recipient or ecc_cert
        signer = signer or sender_cert
        inner = builders.signed_literal(signer.primary, data) if signed else builders.literal(data)
        if compress:
            inner = builders.compressed(inner)
        return builders.encrypt_message(inner, recipient.encryption_key, **kwargs)

    return _make
