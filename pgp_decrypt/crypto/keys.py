"""
Key Material Store.

Parses armored or binary key blocks into PublicKey/PrivateKey values and picks
the key to use for a given purpose. Loading is a pure function of (key bytes,
passphrase); nothing here touches the file system or keeps process-wide state.

Secret parameters stay opaque (encrypted bytes) until PrivateKey.unlock()
succeeds; unlocked values live in SecureBytes and are wiped by clear().
"""

import hashlib
import hmac
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Self

import structlog
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed25519, rsa, x25519

from pgp_decrypt.core.secure_bytes import SecureBytes, as_secure_bytes, wipe
from pgp_decrypt.crypto.armor import unarmor
from pgp_decrypt.crypto.packets import BodyReader, read_packets
from pgp_decrypt.crypto.s2k import S2KSpecifier, parse_s2k
from pgp_decrypt.crypto.signature import parse_signature_packet
from pgp_decrypt.crypto.symmetric import cfb_decrypt
from pgp_decrypt.exceptions import (
    KeyParseError,
    MalformedPacketError,
    PassphraseError,
    UnsupportedAlgorithmError,
)
from pgp_decrypt.models.crypto import (
    EllipticCurve,
    HashAlgorithm,
    PublicKeyAlgorithm,
    SymmetricAlgorithm,
)
from pgp_decrypt.models.keys import KeyFlags, KeyUsage, S2KType, S2KUsage
from pgp_decrypt.models.packets import Packet, PacketTag
from pgp_decrypt.models.signature import Signature, SignatureType

logger = structlog.get_logger(__name__)

_NATIVE_KEY_SIZE = 32  # X25519 / Ed25519 (RFC 9580) raw key length
_SHA1_SIZE = 20
_IGNORED_IN_KEY_BLOCK = frozenset(
    {PacketTag.TRUST, PacketTag.MARKER, PacketTag.PADDING, PacketTag.USER_ATTRIBUTE}
)


@dataclass(frozen=True, kw_only=True)
class KeyPacket:
    """
    Public portion of a version 4 key packet.

    Attributes:
        created: Creation time as a Unix timestamp.
        algorithm: Public key algorithm.
        public_body: Serialized public fields, hashed into the fingerprint.
        params: Algorithm-specific public values. RSA: (n, e); DSA: (p, q, g, y);
            ElGamal: (p, g, y); ECDH/ECDSA/EdDSA: (point,); X25519/Ed25519: (raw key,).
        curve_oid: Curve OID for elliptic curve keys.
        kdf_hash: ECDH KDF hash.
        kdf_cipher: ECDH key-wrap cipher.
    """

    version: int
    created: int
    algorithm: PublicKeyAlgorithm
    public_body: bytes
    params: tuple[bytes, ...]
    curve_oid: bytes | None = None
    kdf_hash: HashAlgorithm | None = None
    kdf_cipher: SymmetricAlgorithm | None = None

    @property
    def fingerprint(self) -> bytes:
        framed = b"\x99" + len(self.public_body).to_bytes(2, "big") + self.public_body
        return hashlib.sha1(framed).digest()

    @property
    def key_id(self) -> bytes:
        return self.fingerprint[-8:]

    @property
    def curve(self) -> EllipticCurve | None:
        if self.curve_oid is None:
            return None
        try:
            return EllipticCurve.from_oid(self.curve_oid)
        except ValueError:
            return None


@dataclass(frozen=True, kw_only=True)
class SecretKeyBlob:
    """
    Protected secret key parameters, still encrypted.

    Attributes:
        usage: S2K usage octet (0, 254, 255, or a legacy cipher id).
        cipher: Cipher protecting the parameters.
        s2k: Passphrase derivation parameters; None when unprotected.
        iv: CFB initialisation vector.
        data: Encrypted parameters followed by the checksum or SHA-1 check.
    """

    usage: int
    cipher: SymmetricAlgorithm
    s2k: S2KSpecifier | None
    iv: bytes
    data: bytes = field(repr=False)

    @property
    def is_protected(self) -> bool:
        return self.usage != S2KUsage.UNPROTECTED

    @property
    def is_stub(self) -> bool:
        return self.s2k is not None and self.s2k.is_stub


class PublicKey:
    """
    One public key (primary or subkey) with the metadata used for selection.

    Args:
        packet: Parsed public key packet.
        primary: Whether this is the primary key of its certificate.
        primary_key_id: Key id of the owning primary key.
        flags: Key flags from the latest self-signature, if any.
        revoked: Whether a revocation signature is attached.
        expires_at: Expiry from the key expiration subpacket, if any.
        user_ids: User ids bound to the primary key.
    """

    def __init__(
        self,
        packet: KeyPacket,
        *,
        primary: bool = True,
        primary_key_id: bytes | None = None,
        flags: KeyFlags | None = None,
        revoked: bool = False,
        expires_at: datetime | None = None,
        user_ids: tuple[str, ...] = (),
    ) -> None:
        self._packet = packet
        self._primary = primary
        self._primary_key_id = primary_key_id or packet.key_id
        self._flags = flags
        self._revoked = revoked
        self._expires_at = expires_at
        self._user_ids = user_ids

    @property
    def packet(self) -> KeyPacket:
        return self._packet

    @property
    def key_id(self) -> str:
        return self._packet.key_id.hex().upper()

    @property
    def key_id_bytes(self) -> bytes:
        return self._packet.key_id

    @property
    def fingerprint(self) -> str:
        return self._packet.fingerprint.hex().upper()

    @property
    def primary_key_id(self) -> str:
        return self._primary_key_id.hex().upper()

    @property
    def algorithm(self) -> PublicKeyAlgorithm:
        return self._packet.algorithm

    @property
    def created_at(self) -> datetime:
        return datetime.fromtimestamp(self._packet.created, tz=timezone.utc)

    @property
    def is_primary(self) -> bool:
        return self._primary

    @property
    def flags(self) -> KeyFlags | None:
        return self._flags

    @property
    def is_revoked(self) -> bool:
        return self._revoked

    @property
    def expires_at(self) -> datetime | None:
        return self._expires_at

    @property
    def user_ids(self) -> tuple[str, ...]:
        return self._user_ids

    @property
    def has_secret(self) -> bool:
        return False

    def is_expired(self, at: datetime | None = None) -> bool:
        if self._expires_at is None:
            return False
        return (at or datetime.now(timezone.utc)) >= self._expires_at

    def allows(self, usage: KeyUsage) -> bool:
        """Check algorithm capability and, when present, the key flags."""
        match usage:
            case KeyUsage.ENCRYPT:
                return self.algorithm.can_encrypt and (self._flags is None or self._flags.can_encrypt)
            case KeyUsage.SIGN:
                return self.algorithm.can_sign and (self._flags is None or self._flags.can_sign)
            case _:
                if self._flags is None:
                    return self._primary and self.algorithm.can_sign
                return self._flags.can_certify

    def is_eligible(self, usage: KeyUsage, at: datetime | None = None) -> bool:
        return self.allows(usage) and not self._revoked and not self.is_expired(at)

    def matches(self, identifier: bytes | str) -> bool:
        """Match by 8-octet key id or full fingerprint (bytes or hex)."""
        if isinstance(identifier, str):
            try:
                identifier = bytes.fromhex(identifier.replace(" ", ""))
            except ValueError:
                return False
        return identifier in (self._packet.key_id, self._packet.fingerprint)

    def public_key_object(self) -> Any:
        """
        Build the cryptography public key for this key.

        Raises:
            UnsupportedAlgorithmError: For algorithms/curves without an implementation.
        """
        packet = self._packet
        params = packet.params
        match packet.algorithm:
            case algorithm if algorithm.is_rsa:
                n, e = (int.from_bytes(p, "big") for p in params)
                return rsa.RSAPublicNumbers(e, n).public_key()
            case PublicKeyAlgorithm.DSA:
                p, q, g, y = (int.from_bytes(v, "big") for v in params)
                return dsa.DSAPublicNumbers(y, dsa.DSAParameterNumbers(p, q, g)).public_key()
            case PublicKeyAlgorithm.ECDSA | PublicKeyAlgorithm.ECDH | PublicKeyAlgorithm.EDDSA:
                return self._ec_public_key()
            case PublicKeyAlgorithm.X25519:
                return x25519.X25519PublicKey.from_public_bytes(params[0])
            case PublicKeyAlgorithm.ED25519:
                return ed25519.Ed25519PublicKey.from_public_bytes(params[0])
            case _:
                msg = f"Unsupported public key algorithm: {packet.algorithm.name}"
                raise UnsupportedAlgorithmError(msg, algorithm=int(packet.algorithm))

    def _ec_public_key(self) -> Any:
        curve = self._packet.curve
        point = self._packet.params[0]
        if curve is None:
            msg = f"Unsupported curve OID: {(self._packet.curve_oid or b'').hex()}"
            raise UnsupportedAlgorithmError(msg, algorithm=int(self.algorithm))
        if curve.is_nist:
            return ec.EllipticCurvePublicKey.from_encoded_point(curve.nist_curve(), point)
        native = _strip_native_prefix(point)
        if curve == EllipticCurve.ED25519:
            return ed25519.Ed25519PublicKey.from_public_bytes(native)
        return x25519.X25519PublicKey.from_public_bytes(native)

    def __repr__(self) -> str:
        role = "primary" if self._primary else "subkey"
        return f"{type(self).__name__}({self.key_id}, {self.algorithm.name}, {role})"


class PrivateKey(PublicKey):
    """
    A key that also carries (protected) secret parameters.

    The secret parameters are unusable until unlock() succeeds. unlock() may be
    called once per use; clear() wipes the unlocked values and locks the key
    again. Use as context manager for guaranteed cleanup.
    """

    def __init__(self, packet: KeyPacket, secret: SecretKeyBlob, **kwargs: Any) -> None:
        super().__init__(packet, **kwargs)
        self._secret_blob = secret
        self._secret: tuple[SecureBytes, ...] | None = None

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *_: object) -> None:
        self.clear()

    @property
    def has_secret(self) -> bool:
        return not self._secret_blob.is_stub

    @property
    def is_protected(self) -> bool:
        return self._secret_blob.is_protected

    @property
    def is_unlocked(self) -> bool:
        return self._secret is not None

    def unlock(
        self, passphrase: SecureBytes | str | bytes, *, max_s2k_count: int | None = None
    ) -> Self:
        """
        Decrypt the secret parameters with ``passphrase``.

        Returns:
            This key, now unlocked.

        Raises:
            PassphraseError: If the checksum over the decrypted parameters fails.
            KeyParseError: If the key is a stub or its parameters are corrupt.
            RuntimeError: If the key is already unlocked.
        """
        if self._secret is not None:
            msg = f"Key {self.key_id} is already unlocked"
            raise RuntimeError(msg)
        if not self.has_secret:
            msg = "Secret key material is not present (stub key)"
            raise KeyParseError(msg, key_id=self.key_id)

        owned = not isinstance(passphrase, SecureBytes)
        secure = as_secure_bytes(passphrase)
        try:
            clear = self._decrypt_secret(secure, max_s2k_count)
        finally:
            if owned:
                secure.clear()

        try:
            self._secret = _parse_secret_values(clear, self.algorithm, self.key_id)
        except MalformedPacketError as e:
            if self.is_protected:
                raise PassphraseError(key_id=self.key_id) from e
            msg = f"Corrupt secret key parameters: {e}"
            raise KeyParseError(msg, key_id=self.key_id) from e
        finally:
            wipe(clear)

        logger.debug("Unlocked secret key", key_id=self.key_id)
        return self

    def clear(self) -> None:
        """Wipe unlocked parameters. Idempotent."""
        if self._secret is None:
            return
        for value in self._secret:
            value.clear()
        self._secret = None

    def secret_values(self) -> tuple[SecureBytes, ...]:
        if self._secret is None:
            msg = f"Key {self.key_id} is locked"
            raise RuntimeError(msg)
        return self._secret

    def private_key_object(self) -> Any:
        """
        Build the cryptography private key from the unlocked parameters.

        Raises:
            RuntimeError: If the key is locked.
            UnsupportedAlgorithmError: For algorithms without an implementation.
        """
        values = self.secret_values()
        algorithm = self.algorithm
        if algorithm.is_rsa:
            d, p, q, _ = (int.from_bytes(bytes(v), "big") for v in values)
            return rsa.RSAPrivateNumbers(
                p=p,
                q=q,
                d=d,
                dmp1=rsa.rsa_crt_dmp1(d, p),
                dmq1=rsa.rsa_crt_dmq1(d, q),
                iqmp=rsa.rsa_crt_iqmp(p, q),
                public_numbers=self.public_key_object().public_numbers(),
            ).private_key()
        if algorithm == PublicKeyAlgorithm.DSA:
            x = int.from_bytes(bytes(values[0]), "big")
            return dsa.DSAPrivateNumbers(x, self.public_key_object().public_numbers()).private_key()
        if algorithm == PublicKeyAlgorithm.X25519:
            return x25519.X25519PrivateKey.from_private_bytes(bytes(values[0]))
        if algorithm == PublicKeyAlgorithm.ED25519:
            return ed25519.Ed25519PrivateKey.from_private_bytes(bytes(values[0]))
        if algorithm in (PublicKeyAlgorithm.ECDH, PublicKeyAlgorithm.ECDSA, PublicKeyAlgorithm.EDDSA):
            return self._ec_private_key(int.from_bytes(bytes(values[0]), "big"))

        msg = f"Unsupported secret key algorithm: {algorithm.name}"
        raise UnsupportedAlgorithmError(msg, algorithm=int(algorithm))

    def _ec_private_key(self, scalar: int) -> Any:
        curve = self.packet.curve
        if curve is None:
            msg = f"Unsupported curve OID: {(self.packet.curve_oid or b'').hex()}"
            raise UnsupportedAlgorithmError(msg, algorithm=int(self.algorithm))
        if curve.is_nist:
            return ec.derive_private_key(scalar, curve.nist_curve())
        if curve == EllipticCurve.ED25519:
            return ed25519.Ed25519PrivateKey.from_private_bytes(scalar.to_bytes(32, "big"))
        # Curve25519 secrets are stored as a big-endian MPI of the native little-endian scalar
        return x25519.X25519PrivateKey.from_private_bytes(scalar.to_bytes(32, "little"))

    def public_view(self) -> PublicKey:
        return PublicKey(
            self.packet,
            primary=self.is_primary,
            primary_key_id=self._primary_key_id,
            flags=self.flags,
            revoked=self.is_revoked,
            expires_at=self.expires_at,
            user_ids=self.user_ids,
        )

    def _decrypt_secret(self, passphrase: SecureBytes, max_s2k_count: int | None) -> bytearray:
        blob = self._secret_blob
        if not blob.is_protected:
            clear = bytearray(blob.data)
        else:
            with blob.s2k.derive_key(passphrase, blob.cipher.key_size, max_count=max_s2k_count) as kek:
                clear = bytearray(cfb_decrypt(blob.data, bytes(kek), blob.cipher, blob.iv))

        if blob.usage == S2KUsage.SHA1_CHECK:
            body, check = clear[:-_SHA1_SIZE], clear[-_SHA1_SIZE:]
            valid = len(clear) > _SHA1_SIZE and hmac.compare_digest(hashlib.sha1(body).digest(), check)
            check_size = _SHA1_SIZE
        else:
            body, check = clear[:-2], clear[-2:]
            valid = len(clear) > 2 and sum(body) % 65536 == int.from_bytes(check, "big")
            check_size = 2
        wipe(body)

        if not valid:
            wipe(clear)
            if blob.is_protected:
                logger.debug("Secret key checksum mismatch", key_id=self.key_id)
                raise PassphraseError(key_id=self.key_id)
            msg = "Unprotected secret key checksum mismatch"
            raise KeyParseError(msg, key_id=self.key_id)

        del clear[-check_size:]
        return clear


@dataclass(frozen=True)
class KeyBlock:
    """All keys found in one key block, primaries and subkeys alike."""

    keys: tuple[PublicKey, ...]

    @property
    def primary_keys(self) -> tuple[PublicKey, ...]:
        return tuple(k for k in self.keys if k.is_primary)

    @property
    def has_secret(self) -> bool:
        return any(k.has_secret for k in self.keys)

    def find(self, identifier: bytes | str) -> PublicKey | None:
        """Find a key by key id or fingerprint."""
        return next((k for k in self.keys if k.matches(identifier)), None)

    def public_keys(self, usage: KeyUsage | None = None) -> list[PublicKey]:
        """Public views of the keys; only the eligible ones when ``usage`` is given."""
        keys = self.select(usage) if usage is not None else list(self.keys)
        return [k.public_view() if isinstance(k, PrivateKey) else k for k in keys]

    def select(
        self, usage: KeyUsage, *, secret: bool = False, at: datetime | None = None
    ) -> list[PublicKey]:
        """
        Eligible keys for ``usage``, most preferred first.

        Subkeys come before primaries; among subkeys the most recently created
        wins, later entries in the block breaking ties.
        """
        candidates = [
            (index, key)
            for index, key in enumerate(self.keys)
            if key.is_eligible(usage, at) and (not secret or key.has_secret)
        ]
        candidates.sort(
            key=lambda item: (not item[1].is_primary, item[1].packet.created, item[0]), reverse=True
        )
        return [key for _, key in candidates]


def parse_key_block(data: bytes | str) -> KeyBlock:
    """
    Parse an armored or binary key block.

    Raises:
        KeyParseError: If the block is structurally invalid or holds no key.
    """
    try:
        packets = read_packets(unarmor(data))
    except MalformedPacketError as e:
        msg = f"Invalid key block: {e}"
        raise KeyParseError(msg) from e

    certificates: list[_CertificateBuilder] = []
    for packet in packets:
        tag = packet.packet_tag
        if tag in (PacketTag.PUBLIC_KEY, PacketTag.SECRET_KEY):
            certificates.append(_CertificateBuilder(_parse_key_packet(packet)))
            continue
        if tag in _IGNORED_IN_KEY_BLOCK:
            if tag == PacketTag.USER_ATTRIBUTE and certificates:
                certificates[-1].start_attribute()
            continue
        if not certificates:
            msg = f"Key block must start with a key packet, got {packet.name}"
            raise KeyParseError(msg)
        current = certificates[-1]
        match tag:
            case PacketTag.PUBLIC_SUBKEY | PacketTag.SECRET_SUBKEY:
                current.add_subkey(packet)
            case PacketTag.USER_ID:
                current.add_user_id(packet.body.decode("utf-8", errors="replace"))
            case PacketTag.SIGNATURE:
                current.add_signature(packet)
            case _:
                msg = f"Unexpected {packet.name} packet in key block"
                raise KeyParseError(msg)

    if not certificates:
        msg = "Key block contains no key packets"
        raise KeyParseError(msg)

    keys = tuple(key for cert in certificates for key in cert.build())
    logger.debug("Parsed key block", keys=len(keys), certificates=len(certificates))
    return KeyBlock(keys=keys)


def load_private_key(
    data: bytes | str,
    passphrase: SecureBytes | str | bytes,
    *,
    usage: KeyUsage = KeyUsage.ENCRYPT,
    max_s2k_count: int | None = None,
) -> PrivateKey:
    """
    Load the preferred secret key for ``usage`` and unlock it.

    Returns:
        Unlocked PrivateKey; call clear() (or use ``with``) when done.

    Raises:
        KeyParseError: If the block is invalid or holds no eligible secret key.
        PassphraseError: If the passphrase does not unlock the key.
    """
    block = parse_key_block(data)
    key = select_private_key(block, usage)
    return key.unlock(passphrase, max_s2k_count=max_s2k_count)


def load_public_key(data: bytes | str, *, usage: KeyUsage = KeyUsage.SIGN) -> PublicKey:
    """
    Load the preferred public key for ``usage``.

    Secret key blocks are accepted; the returned value never exposes secret material.

    Raises:
        KeyParseError: If the block is invalid or holds no eligible key.
    """
    block = parse_key_block(data)
    candidates = block.select(usage)
    if not candidates:
        msg = f"No key in block is usable for {usage.value}"
        raise KeyParseError(msg)
    key = candidates[0]
    return key.public_view() if isinstance(key, PrivateKey) else key


def select_private_key(block: KeyBlock, usage: KeyUsage) -> PrivateKey:
    """Preferred eligible secret key in ``block``."""
    if not block.has_secret:
        msg = "Key block holds no secret key material"
        raise KeyParseError(msg)
    candidates = block.select(usage, secret=True)
    if not candidates:
        msg = f"No secret key in block is usable for {usage.value}"
        raise KeyParseError(msg)
    return candidates[0]


class _CertificateBuilder:
    """Collects the packets of one transferable key while the block is walked."""

    def __init__(self, primary: tuple[KeyPacket, SecretKeyBlob | None]) -> None:
        self._primary = primary
        self._direct_signatures: list[Signature] = []
        self._user_ids: list[str] = []
        self._certifications: list[Signature] = []
        self._subkeys: list[tuple[KeyPacket, SecretKeyBlob | None, list[Signature]]] = []
        self._target = "primary"

    def start_attribute(self) -> None:
        self._target = "attribute"

    def add_user_id(self, user_id: str) -> None:
        self._user_ids.append(user_id)
        self._target = "user_id"

    def add_subkey(self, packet: Packet) -> None:
        try:
            parsed = _parse_key_packet(packet)
        except (KeyParseError, UnsupportedAlgorithmError) as e:
            logger.warning("Skipping unusable subkey", error=str(e))
            self._target = "skipped"
            return
        self._subkeys.append((*parsed, []))
        self._target = "subkey"

    def add_signature(self, packet: Packet) -> None:
        try:
            signature = parse_signature_packet(packet)
        except (MalformedPacketError, UnsupportedAlgorithmError) as e:
            logger.warning("Skipping unparseable key signature", error=str(e))
            return
        match self._target:
            case "primary":
                self._direct_signatures.append(signature)
            case "user_id":
                self._certifications.append(signature)
            case "subkey":
                self._subkeys[-1][2].append(signature)

    def build(self) -> list[PublicKey]:
        primary_packet, primary_secret = self._primary
        primary_id = primary_packet.key_id
        own = [
            s
            for s in self._direct_signatures + self._certifications
            if s.issuer_key_id in (None, primary_id)
        ]
        self_signature = _latest(s for s in own if _is_self_signature_type(s.signature_type))
        primary_revoked = any(
            s.signature_type == SignatureType.KEY_REVOCATION for s in self._direct_signatures
        )
        user_ids = tuple(self._user_ids)

        keys = [
            _make_key(
                primary_packet,
                primary_secret,
                primary=True,
                primary_key_id=primary_id,
                flags=_flags_of(self_signature),
                revoked=primary_revoked,
                expires_at=_expiry_of(primary_packet, self_signature),
                user_ids=user_ids,
            )
        ]
        for packet, secret, signatures in self._subkeys:
            binding = _latest(s for s in signatures if s.signature_type == SignatureType.SUBKEY_BINDING)
            revoked = primary_revoked or any(
                s.signature_type == SignatureType.SUBKEY_REVOCATION for s in signatures
            )
            keys.append(
                _make_key(
                    packet,
                    secret,
                    primary=False,
                    primary_key_id=primary_id,
                    flags=_flags_of(binding),
                    revoked=revoked,
                    expires_at=_expiry_of(packet, binding),
                    user_ids=user_ids,
                )
            )
        return keys


def _make_key(packet: KeyPacket, secret: SecretKeyBlob | None, **kwargs: Any) -> PublicKey:
    if secret is None:
        return PublicKey(packet, **kwargs)
    return PrivateKey(packet, secret, **kwargs)


def _latest(signatures: Iterable[Signature]) -> Signature | None:
    """Most recent signature; later ones win ties and undated ones."""
    latest = None
    for signature in signatures:
        if latest is None or _sort_time(signature) >= _sort_time(latest):
            latest = signature
    return latest


def _sort_time(signature: Signature) -> datetime:
    return signature.creation_time or datetime.min.replace(tzinfo=timezone.utc)


def _is_self_signature_type(signature_type: int) -> bool:
    if signature_type == SignatureType.DIRECT_KEY:
        return True
    return SignatureType.GENERIC_CERTIFICATION <= signature_type <= SignatureType.POSITIVE_CERTIFICATION


def _flags_of(signature: Signature | None) -> KeyFlags | None:
    if signature is None or signature.key_flags is None:
        return None
    return KeyFlags(signature.key_flags)


def _expiry_of(packet: KeyPacket, signature: Signature | None) -> datetime | None:
    if signature is None:
        return None
    seconds = signature.key_expiration_seconds
    if not seconds:
        return None
    return datetime.fromtimestamp(packet.created, tz=timezone.utc) + timedelta(seconds=seconds)


def _parse_key_packet(packet: Packet) -> tuple[KeyPacket, SecretKeyBlob | None]:
    is_secret = packet.tag in (PacketTag.SECRET_KEY, PacketTag.SECRET_SUBKEY)
    reader = BodyReader(packet.body, packet_tag=packet.tag)
    try:
        key_packet = _parse_public_part(reader, packet.body)
        secret = _parse_secret_part(reader, key_packet.algorithm) if is_secret else None
    except (MalformedPacketError, UnsupportedAlgorithmError) as e:
        msg = f"Unusable {packet.name} packet: {e}"
        raise KeyParseError(msg) from e
    return key_packet, secret


def _parse_public_part(reader: BodyReader, body: bytes) -> KeyPacket:
    version = reader.read_byte()
    if version != 4:
        msg = f"Unsupported key packet version: {version}"
        raise KeyParseError(msg)
    created = reader.read_uint32()
    algorithm_id = reader.read_byte()
    try:
        algorithm = PublicKeyAlgorithm(algorithm_id)
    except ValueError:
        msg = f"Unknown public key algorithm: {algorithm_id}"
        raise KeyParseError(msg) from None

    curve_oid = None
    kdf_hash = None
    kdf_cipher = None
    match algorithm:
        case algo if algo.is_rsa:
            params = (reader.read_mpi(), reader.read_mpi())
        case PublicKeyAlgorithm.DSA:
            params = tuple(reader.read_mpi() for _ in range(4))
        case PublicKeyAlgorithm.ELGAMAL_ENCRYPT_ONLY | PublicKeyAlgorithm.ELGAMAL_ENCRYPT_OR_SIGN:
            params = tuple(reader.read_mpi() for _ in range(3))
        case PublicKeyAlgorithm.ECDSA | PublicKeyAlgorithm.EDDSA:
            curve_oid = reader.read_oid()
            params = (reader.read_mpi(),)
        case PublicKeyAlgorithm.ECDH:
            curve_oid = reader.read_oid()
            params = (reader.read_mpi(),)
            kdf_hash, kdf_cipher = _parse_kdf_params(reader)
        case PublicKeyAlgorithm.X25519 | PublicKeyAlgorithm.ED25519:
            params = (reader.read(_NATIVE_KEY_SIZE),)
        case _:
            msg = f"Unsupported key algorithm: {algorithm.name}"
            raise UnsupportedAlgorithmError(msg, algorithm=algorithm_id)

    return KeyPacket(
        version=version,
        created=created,
        algorithm=algorithm,
        public_body=body[: reader.position],
        params=params,
        curve_oid=curve_oid,
        kdf_hash=kdf_hash,
        kdf_cipher=kdf_cipher,
    )


def _parse_kdf_params(reader: BodyReader) -> tuple[HashAlgorithm, SymmetricAlgorithm]:
    size = reader.read_byte()
    fields = reader.read(size)
    if size < 3 or fields[0] != 0x01:
        msg = "Unsupported ECDH KDF parameters"
        raise KeyParseError(msg)
    try:
        return HashAlgorithm(fields[1]), SymmetricAlgorithm(fields[2])
    except ValueError:
        msg = f"Unknown ECDH KDF algorithms: hash={fields[1]}, cipher={fields[2]}"
        raise KeyParseError(msg) from None


def _parse_secret_part(reader: BodyReader, algorithm: PublicKeyAlgorithm) -> SecretKeyBlob:
    usage = reader.read_byte()

    if usage == S2KUsage.UNPROTECTED:
        return SecretKeyBlob(
            usage=usage, cipher=SymmetricAlgorithm.PLAINTEXT, s2k=None, iv=b"", data=reader.read_rest()
        )

    if usage == S2KUsage.AEAD:
        msg = "AEAD-protected secret keys are not supported"
        raise UnsupportedAlgorithmError(msg, algorithm="s2k-aead")

    if usage in (S2KUsage.SHA1_CHECK, S2KUsage.CHECKSUM):
        cipher = _parse_cipher(reader.read_byte())
        s2k = parse_s2k(reader)
    else:
        # Legacy: the usage octet is the cipher, with a simple MD5 S2K
        cipher = _parse_cipher(usage)
        s2k = S2KSpecifier(type=S2KType.SIMPLE, hash_algorithm=HashAlgorithm.MD5)

    if s2k.is_stub:
        return SecretKeyBlob(usage=usage, cipher=cipher, s2k=s2k, iv=b"", data=reader.read_rest())

    if not cipher.block_size:
        msg = f"Secret key protected with unusable cipher {cipher.name}"
        raise KeyParseError(msg)
    iv = reader.read(cipher.block_size)
    return SecretKeyBlob(usage=usage, cipher=cipher, s2k=s2k, iv=iv, data=reader.read_rest())


def _parse_cipher(cipher_id: int) -> SymmetricAlgorithm:
    try:
        return SymmetricAlgorithm(cipher_id)
    except ValueError:
        msg = f"Unknown secret key cipher: {cipher_id}"
        raise KeyParseError(msg) from None


def _parse_secret_values(
    clear: bytearray, algorithm: PublicKeyAlgorithm, key_id: str
) -> tuple[SecureBytes, ...]:
    reader = BodyReader(bytes(clear), packet_tag=PacketTag.SECRET_KEY)
    if algorithm.is_rsa:
        count = 4
    elif algorithm in (PublicKeyAlgorithm.X25519, PublicKeyAlgorithm.ED25519):
        return (SecureBytes(reader.read(_NATIVE_KEY_SIZE)),)
    else:
        count = 1
    values = tuple(SecureBytes(reader.read_mpi()) for _ in range(count))
    if not reader.at_end:
        logger.debug("Trailing bytes after secret key parameters", key_id=key_id, size=reader.remaining)
    return values


def _strip_native_prefix(point: bytes) -> bytes:
    if len(point) == 33 and point[0] == 0x40:
        return point[1:]
    msg = "Expected a native (0x40-prefixed) curve point"
    raise UnsupportedAlgorithmError(msg, algorithm="ecc-point")
