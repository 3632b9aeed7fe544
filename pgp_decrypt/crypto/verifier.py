"""
Signature verification over literal data.

Outcomes are results, not exceptions: a signature whose issuer matches none of
the supplied keys is SIGNER_UNKNOWN, a cryptographic or policy failure is
INVALID, and only a fully checked signature is VALID.
"""

import re
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone

import structlog
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric import ec, padding
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed, encode_dss_signature

from pgp_decrypt.crypto.armor import unarmor
from pgp_decrypt.crypto.keys import KeyBlock, PublicKey, parse_key_block
from pgp_decrypt.crypto.packets import read_packets
from pgp_decrypt.crypto.signature import parse_signature_packet
from pgp_decrypt.exceptions import MalformedPacketError, UnsupportedAlgorithmError
from pgp_decrypt.models.crypto import PublicKeyAlgorithm
from pgp_decrypt.models.keys import KeyUsage
from pgp_decrypt.models.packets import PacketTag
from pgp_decrypt.models.result import SignatureCheck, VerificationOutcome
from pgp_decrypt.models.signature import Signature, SignatureType

logger = structlog.get_logger(__name__)

_LINE_ENDING = re.compile(rb"\r?\n")
_DOCUMENT_TYPES = (SignatureType.BINARY, SignatureType.TEXT)
_EDDSA_COMPONENT_SIZE = 32


def canonicalize_text(data: bytes) -> bytes:
    """Normalise line endings to CRLF, as text signatures are computed."""
    return _LINE_ENDING.sub(b"\r\n", data)


def signature_digest(signature: Signature, data: bytes) -> bytes:
    """
    Hash ``data`` together with the signature's hashed material.

    Raises:
        ValueError: If the hash algorithm is unavailable.
    """
    if signature.signature_type == SignatureType.TEXT:
        data = canonicalize_text(data)
    hasher = signature.hash_algorithm.new(data)
    hasher.update(signature.hashed_header)
    if signature.version == 4:
        hasher.update(b"\x04\xff" + len(signature.hashed_header).to_bytes(4, "big"))
    return hasher.digest()


class SignatureVerifier:
    """
    Checks document signatures against a set of public keys.

    Example:
        verifier = SignatureVerifier()
        check = verifier.verify(signature, plaintext, block.public_keys())
    """

    def __init__(self, *, at: datetime | None = None) -> None:
        """
        Args:
            at: Reference time for expiry checks; defaults to now.
        """
        self._at = at

    def verify(self, signature: Signature, data: bytes, public_keys: Sequence[PublicKey]) -> SignatureCheck:
        """
        Verify one signature over ``data``.

        Args:
            signature: Parsed signature packet.
            data: Signed content (the literal data body).
            public_keys: Candidate signer keys.

        Returns:
            SignatureCheck with VALID, INVALID or SIGNER_UNKNOWN.
        """
        issuer = signature.issuer_key_id
        issuer_hex = issuer.hex().upper() if issuer is not None else None
        candidates = _candidates(signature, public_keys)
        if not candidates:
            logger.debug("Signer not among supplied keys", issuer=issuer_hex)
            return SignatureCheck(
                outcome=VerificationOutcome.SIGNER_UNKNOWN,
                issuer_key_id=issuer_hex,
                created_at=signature.creation_time,
                reason="No supplied key matches the signature issuer",
            )

        check = None
        for key in candidates:
            check = self._verify_with(signature, data, key, issuer_hex)
            if check.outcome is VerificationOutcome.VALID:
                break
        logger.debug("Signature checked", issuer=issuer_hex, outcome=check.outcome.value)
        return check

    def verify_all(
        self, signatures: Iterable[Signature], data: bytes, public_keys: Sequence[PublicKey]
    ) -> tuple[SignatureCheck, ...]:
        return tuple(self.verify(signature, data, public_keys) for signature in signatures)

    def _verify_with(
        self, signature: Signature, data: bytes, key: PublicKey, issuer_hex: str | None
    ) -> SignatureCheck:
        reason = self._policy_failure(signature, key)
        if reason is None:
            reason = _cryptographic_failure(signature, data, key)
        if reason is not None:
            return SignatureCheck(
                outcome=VerificationOutcome.INVALID,
                issuer_key_id=issuer_hex,
                signer_key_id=key.key_id,
                signer_fingerprint=key.fingerprint,
                created_at=signature.creation_time,
                reason=reason,
            )
        return SignatureCheck(
            outcome=VerificationOutcome.VALID,
            issuer_key_id=issuer_hex,
            signer_key_id=key.key_id,
            signer_fingerprint=key.fingerprint,
            created_at=signature.creation_time,
        )

    def _policy_failure(self, signature: Signature, key: PublicKey) -> str | None:
        now = self._at or datetime.now(timezone.utc)
        created = signature.creation_time
        if signature.signature_type not in _DOCUMENT_TYPES:
            return f"Not a document signature (type 0x{signature.signature_type:02x})"
        if not key.allows(KeyUsage.SIGN):
            return f"Key {key.key_id} is not usable for signing"
        if key.is_revoked:
            return f"Key {key.key_id} is revoked"
        if key.is_expired(created or now):
            return f"Key {key.key_id} was expired when the signature was made"
        if created is not None and created < key.created_at:
            return "Signature predates the signing key"
        expires = signature.expiration_time
        if expires is not None and expires <= now:
            return "Signature has expired"
        return None


def verify_detached(
    signature: bytes | str,
    data: bytes,
    public_key: bytes | str | KeyBlock,
    *,
    at: datetime | None = None,
) -> SignatureCheck:
    """
    Verify a detached signature over ``data``.

    Args:
        signature: Armored or binary signature (the first signature packet is used).
        data: Signed content.
        public_key: Armored/binary key block, or an already parsed KeyBlock.
        at: Reference time for expiry checks.

    Raises:
        MalformedPacketError: If the signature input holds no signature packet.
        KeyParseError: If the key block is invalid.
    """
    block = public_key if isinstance(public_key, KeyBlock) else parse_key_block(public_key)
    packet = next(
        (p for p in read_packets(unarmor(signature)) if p.packet_tag == PacketTag.SIGNATURE),
        None,
    )
    if packet is None:
        msg = "No signature packet found"
        raise MalformedPacketError(msg, packet_tag=PacketTag.SIGNATURE)
    try:
        parsed = parse_signature_packet(packet)
    except UnsupportedAlgorithmError as e:
        return SignatureCheck(outcome=VerificationOutcome.INVALID, issuer_key_id=None, reason=e.message)
    return SignatureVerifier(at=at).verify(parsed, data, block.public_keys())


def aggregate_outcome(checks: Sequence[SignatureCheck]) -> VerificationOutcome:
    """Collapse per-signature checks: any VALID wins, then INVALID, then SIGNER_UNKNOWN."""
    outcomes = {check.outcome for check in checks}
    if not outcomes:
        return VerificationOutcome.UNSIGNED
    for outcome in (VerificationOutcome.VALID, VerificationOutcome.INVALID):
        if outcome in outcomes:
            return outcome
    return VerificationOutcome.SIGNER_UNKNOWN


def _candidates(signature: Signature, public_keys: Sequence[PublicKey]) -> list[PublicKey]:
    fingerprint = signature.issuer_fingerprint
    if fingerprint is not None:
        matched = [k for k in public_keys if k.packet.fingerprint == fingerprint]
        if matched:
            return matched
    issuer = signature.issuer_key_id
    if issuer is None:
        return [k for k in public_keys if k.algorithm == signature.pubkey_algorithm]
    return [k for k in public_keys if k.key_id_bytes == issuer]


def _cryptographic_failure(signature: Signature, data: bytes, key: PublicKey) -> str | None:
    if signature.pubkey_algorithm != key.algorithm:
        algorithm = signature.pubkey_algorithm.name
        return f"Signature algorithm {algorithm} does not match key {key.algorithm.name}"
    try:
        digest = signature_digest(signature, data)
    except ValueError:
        return f"Hash algorithm {signature.hash_algorithm.name} is not available"
    if signature.hash_prefix and digest[:2] != signature.hash_prefix:
        return "Digest prefix mismatch, data was modified"

    try:
        _check_values(signature, key, digest)
    except InvalidSignature:
        return "Signature does not verify"
    except (UnsupportedAlgorithmError, ValueError) as e:
        return f"Cannot verify signature: {e}"
    return None


def _check_values(signature: Signature, key: PublicKey, digest: bytes) -> None:
    public_key = key.public_key_object()
    values = signature.values
    match signature.pubkey_algorithm:
        case algorithm if algorithm.is_rsa:
            modulus_size = (public_key.key_size + 7) // 8
            prehashed = Prehashed(signature.hash_algorithm.cryptography_hash())
            public_key.verify(values[0].rjust(modulus_size, b"\x00"), digest, padding.PKCS1v15(), prehashed)
        case PublicKeyAlgorithm.DSA:
            r, s = (int.from_bytes(v, "big") for v in values)
            public_key.verify(
                encode_dss_signature(r, s), digest, Prehashed(signature.hash_algorithm.cryptography_hash())
            )
        case PublicKeyAlgorithm.ECDSA:
            r, s = (int.from_bytes(v, "big") for v in values)
            prehashed = Prehashed(signature.hash_algorithm.cryptography_hash())
            public_key.verify(encode_dss_signature(r, s), digest, ec.ECDSA(prehashed))
        case PublicKeyAlgorithm.EDDSA:
            r, s = values
            if len(r) > _EDDSA_COMPONENT_SIZE or len(s) > _EDDSA_COMPONENT_SIZE:
                raise InvalidSignature
            public_key.verify(
                r.rjust(_EDDSA_COMPONENT_SIZE, b"\x00") + s.rjust(_EDDSA_COMPONENT_SIZE, b"\x00"), digest
            )
        case PublicKeyAlgorithm.ED25519:
            public_key.verify(values[0], digest)
        case _:
            msg = f"Signature verification with {signature.pubkey_algorithm.name} is not supported"
            raise UnsupportedAlgorithmError(msg, algorithm=int(signature.pubkey_algorithm))
