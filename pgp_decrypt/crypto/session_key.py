"""
Session key recovery from Public-Key Encrypted Session Key (PKESK) packets.

A PKESK carries the symmetric key of the message, encrypted to one recipient
key. Version 3 packets address the recipient by key id and prepend the cipher id
to the session key; version 6 packets address it by fingerprint and leave the
cipher to the SEIPD v2 header.
"""

import hmac

import structlog
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, padding, x25519
from cryptography.hazmat.primitives.kdf.concatkdf import ConcatKDFHash
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.keywrap import InvalidUnwrap, aes_key_unwrap

from pgp_decrypt.core.secure_bytes import SecureBytes, wipe
from pgp_decrypt.crypto.keys import PrivateKey
from pgp_decrypt.crypto.packets import BodyReader, read_packet
from pgp_decrypt.exceptions import MalformedPacketError, SessionKeyError, UnsupportedAlgorithmError
from pgp_decrypt.models.crypto import (
    EllipticCurve,
    PKESKPacket,
    PublicKeyAlgorithm,
    SessionKey,
    SymmetricAlgorithm,
)
from pgp_decrypt.models.packets import Packet, PacketTag

logger = structlog.get_logger(__name__)

_ANONYMOUS_SENDER = b"Anonymous Sender    "
_X25519_INFO = b"OpenPGP X25519"
_X25519_SIZE = 32
_WILDCARD_KEY_ID = bytes(8)


def parse_pkesk_packet(packet: Packet | bytes) -> PKESKPacket:
    """
    Parse a PKESK packet.

    Args:
        packet: Parsed packet, or raw packet bytes including the header.

    Returns:
        Parsed PKESKPacket.

    Raises:
        MalformedPacketError: If the packet is truncated or is not a PKESK.
        UnsupportedAlgorithmError: For unknown versions or algorithms.
    """
    if not isinstance(packet, Packet):
        packet, _ = read_packet(bytes(packet), 0)
    if packet.tag != PacketTag.PKESK:
        msg = f"Expected PKESK packet (tag 1), got tag {packet.tag}"
        raise MalformedPacketError(msg, packet_tag=packet.tag)

    reader = BodyReader(packet.body, packet_tag=PacketTag.PKESK)
    version = reader.read_byte()
    if version == 3:
        return _parse_pkesk_v3(reader)
    if version == 6:
        return _parse_pkesk_v6(reader)

    msg = f"Unsupported PKESK version: {version}"
    raise UnsupportedAlgorithmError(msg, algorithm=f"pkesk-v{version}")


def _parse_pkesk_v3(reader: BodyReader) -> PKESKPacket:
    key_id = reader.read(8)
    algorithm = _parse_algorithm(reader.read_byte())
    return PKESKPacket(
        version=3,
        key_id=key_id,
        algorithm=algorithm,
        encrypted_session_key=reader.read_rest(),
    )


def _parse_pkesk_v6(reader: BodyReader) -> PKESKPacket:
    recipient_size = reader.read_byte()
    fingerprint = None
    key_id = _WILDCARD_KEY_ID
    if recipient_size:
        key_version = reader.read_byte()
        fingerprint = reader.read(recipient_size - 1)
        # v4 key ids are the low 64 bits of the fingerprint, v6 the high 64 bits
        key_id = fingerprint[-8:] if key_version == 4 else fingerprint[:8]
    algorithm = _parse_algorithm(reader.read_byte())
    return PKESKPacket(
        version=6,
        key_id=key_id,
        algorithm=algorithm,
        encrypted_session_key=reader.read_rest(),
        fingerprint=fingerprint,
    )


def _parse_algorithm(algorithm_id: int) -> PublicKeyAlgorithm:
    try:
        return PublicKeyAlgorithm(algorithm_id)
    except ValueError:
        msg = f"Unknown public key algorithm: {algorithm_id}"
        raise UnsupportedAlgorithmError(msg, algorithm=algorithm_id) from None


class SessionKeyResolver:
    """
    Unwraps the session key of a PKESK with an unlocked private key.

    Example:
        resolver = SessionKeyResolver()
        with resolver.resolve(pkesk, private_key) as session_key:
            ...
    """

    def resolve(
        self,
        pkesk: PKESKPacket,
        private_key: PrivateKey,
        *,
        symmetric_hint: SymmetricAlgorithm | None = None,
    ) -> SessionKey:
        """
        Recover the session key from ``pkesk``.

        Args:
            pkesk: Parsed PKESK packet.
            private_key: Unlocked recipient key.
            symmetric_hint: Cipher named by the SEIPD v2 header; required for v6
                PKESKs, whose payload does not name the cipher.

        Returns:
            SessionKey; the caller must clear it when done.

        Raises:
            SessionKeyError: If the key does not match, the payload is malformed,
                or its checksum fails.
            UnsupportedAlgorithmError: For algorithms without an implementation.
        """
        key_id = private_key.key_id
        if pkesk.algorithm != private_key.algorithm:
            msg = f"PKESK uses {pkesk.algorithm.name}, key {key_id} is {private_key.algorithm.name}"
            raise SessionKeyError(msg, key_id=key_id)
        if pkesk.version == 6 and symmetric_hint is None:
            msg = "Version 6 PKESK requires the cipher from the encrypted data packet"
            raise SessionKeyError(msg, key_id=key_id)

        try:
            match pkesk.algorithm:
                case algorithm if algorithm.is_rsa:
                    payload = self._decrypt_rsa(pkesk, private_key)
                case PublicKeyAlgorithm.ECDH:
                    payload = self._decrypt_ecdh(pkesk, private_key)
                case PublicKeyAlgorithm.X25519:
                    return self._decrypt_x25519(pkesk, private_key, symmetric_hint)
                case _:
                    msg = f"Session key decryption with {pkesk.algorithm.name} is not supported"
                    raise UnsupportedAlgorithmError(msg, algorithm=int(pkesk.algorithm))
        except MalformedPacketError as e:
            msg = f"Malformed encrypted session key: {e}"
            raise SessionKeyError(msg, key_id=key_id) from e

        try:
            return self._parse_payload(payload, pkesk.version, symmetric_hint, key_id)
        finally:
            wipe(payload)

    @staticmethod
    def _decrypt_rsa(pkesk: PKESKPacket, private_key: PrivateKey) -> bytearray:
        reader = BodyReader(pkesk.encrypted_session_key, packet_tag=PacketTag.PKESK)
        ciphertext = reader.read_mpi()
        rsa_key = private_key.private_key_object()
        modulus_size = (rsa_key.key_size + 7) // 8
        if len(ciphertext) > modulus_size:
            msg = "RSA ciphertext is larger than the modulus"
            raise SessionKeyError(msg, key_id=private_key.key_id)
        try:
            # MPIs drop leading zeros; RSA wants the full modulus width
            return bytearray(rsa_key.decrypt(ciphertext.rjust(modulus_size, b"\x00"), padding.PKCS1v15()))
        except ValueError as e:
            msg = "RSA session key decryption failed"
            raise SessionKeyError(msg, key_id=private_key.key_id) from e

    @staticmethod
    def _decrypt_ecdh(pkesk: PKESKPacket, private_key: PrivateKey) -> bytearray:
        key_packet = private_key.packet
        curve = key_packet.curve
        if curve is None or key_packet.kdf_hash is None or key_packet.kdf_cipher is None:
            msg = "ECDH key is missing curve or KDF parameters"
            raise UnsupportedAlgorithmError(msg, algorithm=int(PublicKeyAlgorithm.ECDH))

        reader = BodyReader(pkesk.encrypted_session_key, packet_tag=PacketTag.PKESK)
        ephemeral = reader.read_mpi()
        wrapped = reader.read(reader.read_byte())

        secret_key = private_key.private_key_object()
        try:
            if curve.is_nist:
                peer = ec.EllipticCurvePublicKey.from_encoded_point(curve.nist_curve(), ephemeral)
                shared = secret_key.exchange(ec.ECDH(), peer)
            elif curve == EllipticCurve.CURVE25519 and len(ephemeral) == 33 and ephemeral[0] == 0x40:
                shared = secret_key.exchange(x25519.X25519PublicKey.from_public_bytes(ephemeral[1:]))
            else:
                msg = f"ECDH over {curve.name} is not supported"
                raise UnsupportedAlgorithmError(msg, algorithm=int(PublicKeyAlgorithm.ECDH))
        except ValueError as e:
            msg = f"Invalid ECDH ephemeral key: {e}"
            raise SessionKeyError(msg, key_id=private_key.key_id) from e

        other_info = (
            bytes([len(key_packet.curve_oid)])
            + key_packet.curve_oid
            + bytes([PublicKeyAlgorithm.ECDH, 3, 1, key_packet.kdf_hash, key_packet.kdf_cipher])
            + _ANONYMOUS_SENDER
            + key_packet.fingerprint
        )
        kdf = ConcatKDFHash(
            algorithm=key_packet.kdf_hash.cryptography_hash(),
            length=key_packet.kdf_cipher.key_size,
            otherinfo=other_info,
        )
        kek = SecureBytes(kdf.derive(shared))
        try:
            padded = bytearray(aes_key_unwrap(bytes(kek), wrapped))
        except (InvalidUnwrap, ValueError) as e:
            msg = "ECDH key unwrap failed"
            raise SessionKeyError(msg, key_id=private_key.key_id) from e
        finally:
            kek.clear()
        return _unpad_pkcs5(padded, private_key.key_id)

    @staticmethod
    def _decrypt_x25519(
        pkesk: PKESKPacket, private_key: PrivateKey, symmetric_hint: SymmetricAlgorithm | None
    ) -> SessionKey:
        reader = BodyReader(pkesk.encrypted_session_key, packet_tag=PacketTag.PKESK)
        ephemeral = reader.read(_X25519_SIZE)
        remaining = reader.read_byte()
        if pkesk.version == 3:
            algorithm = _parse_cipher(reader.read_byte(), private_key.key_id)
            remaining -= 1
        else:
            algorithm = symmetric_hint
        wrapped = reader.read(remaining)

        try:
            shared = private_key.private_key_object().exchange(
                x25519.X25519PublicKey.from_public_bytes(ephemeral)
            )
        except ValueError as e:
            msg = f"Invalid X25519 ephemeral key: {e}"
            raise SessionKeyError(msg, key_id=private_key.key_id) from e

        hkdf = HKDF(algorithm=hashes.SHA256(), length=16, salt=None, info=_X25519_INFO)
        kek = SecureBytes(hkdf.derive(ephemeral + private_key.packet.params[0] + shared))
        try:
            key_data = SecureBytes(aes_key_unwrap(bytes(kek), wrapped))
        except (InvalidUnwrap, ValueError) as e:
            msg = "X25519 key unwrap failed"
            raise SessionKeyError(msg, key_id=private_key.key_id) from e
        finally:
            kek.clear()
        return _make_session_key(algorithm, key_data, private_key.key_id)

    @staticmethod
    def _parse_payload(
        payload: bytearray, version: int, symmetric_hint: SymmetricAlgorithm | None, key_id: str
    ) -> SessionKey:
        if version == 3:
            if not payload:
                msg = "Empty session key payload"
                raise SessionKeyError(msg, key_id=key_id)
            algorithm = _parse_cipher(payload[0], key_id)
            body = payload[1:]
        else:
            algorithm = symmetric_hint
            body = payload[:]

        try:
            if len(body) < 3:
                msg = f"Session key payload too short: {len(body)} bytes"
                raise SessionKeyError(msg, key_id=key_id)
            key_bytes, checksum = body[:-2], body[-2:]
            key_data = SecureBytes(key_bytes)
            wipe(key_bytes)
            computed = key_data.checksum16().to_bytes(2, "big")
            if not hmac.compare_digest(computed, bytes(checksum)):
                key_data.clear()
                logger.debug("Session key checksum mismatch", key_id=key_id)
                msg = "Session key checksum mismatch, wrong key or corrupted data"
                raise SessionKeyError(msg, key_id=key_id)
        finally:
            wipe(body)
        return _make_session_key(algorithm, key_data, key_id)


def _parse_cipher(algorithm_id: int, key_id: str) -> SymmetricAlgorithm:
    try:
        algorithm = SymmetricAlgorithm(algorithm_id)
    except ValueError:
        algorithm = None
    if algorithm is None or algorithm == SymmetricAlgorithm.PLAINTEXT:
        msg = f"Invalid session key cipher: {algorithm_id}"
        raise SessionKeyError(msg, key_id=key_id)
    return algorithm


def _make_session_key(algorithm: SymmetricAlgorithm, key_data: SecureBytes, key_id: str) -> SessionKey:
    try:
        session_key = SessionKey(algorithm=algorithm, key_data=key_data)
    except ValueError as e:
        key_data.clear()
        raise SessionKeyError(str(e), key_id=key_id) from e
    logger.debug("Session key resolved", key_id=key_id, algorithm=algorithm.name)
    return session_key


def _unpad_pkcs5(padded: bytearray, key_id: str) -> bytearray:
    pad = padded[-1] if padded else 0
    if pad == 0 or pad > len(padded) or any(b != pad for b in padded[-pad:]):
        wipe(padded)
        msg = "Invalid session key padding"
        raise SessionKeyError(msg, key_id=key_id)
    del padded[-pad:]
    return padded
