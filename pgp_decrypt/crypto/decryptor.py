"""
Symmetric decryption of OpenPGP encrypted-data packets.

Handles the three encrypted-data variants:
- SEIPD v1: prefixed IV, plain CFB, trailing Modification Detection Code (SHA-1).
- SEIPD v2: chunked AEAD (OCB or GCM) keyed through HKDF-SHA256.
- SED: legacy resynchronising CFB without any integrity protection.

Integrity is always checked before the plaintext is handed out. A failed check
raises IntegrityError unless the caller explicitly opts into the unsafe path, in
which case the bytes are returned together with ``integrity_ok=False``.
"""

import hashlib
import hmac

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, AESOCB3
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from pgp_decrypt.core.secure_bytes import SecureBytes
from pgp_decrypt.crypto.packets import BodyReader
from pgp_decrypt.crypto.symmetric import cfb_decrypt, check_prefix, decrypt_openpgp_cfb
from pgp_decrypt.exceptions import (
    IntegrityError,
    MalformedPacketError,
    SessionKeyError,
    UnsupportedAlgorithmError,
)
from pgp_decrypt.models.crypto import (
    AEADAlgorithm,
    SEDPacket,
    SEIPDPacket,
    SessionKey,
    SymmetricAlgorithm,
)
from pgp_decrypt.models.packets import Packet, PacketTag

logger = structlog.get_logger(__name__)

_MDC_PACKET_SIZE = 22  # 2-byte header + 20-byte SHA-1
_MDC_HEADER = b"\xd3\x14"
_MDC_HASH_SIZE = 20
_SEIPD_V2_SALT_SIZE = 32
_SEIPD_V2_MAX_CHUNK_OCTET = 16


def parse_seipd_packet(packet: Packet) -> SEIPDPacket:
    """
    Parse the body of a SEIPD packet (tag 18).

    Raises:
        MalformedPacketError: If the body is truncated.
        UnsupportedAlgorithmError: For unknown versions, ciphers or AEAD modes.
    """
    reader = BodyReader(packet.body, packet_tag=PacketTag.SEIPD)
    version = reader.read_byte()

    if version == 1:
        return SEIPDPacket(version=1, encrypted_data=reader.read_rest())

    if version == 2:
        cipher_id = reader.read_byte()
        aead_id = reader.read_byte()
        chunk_size_octet = reader.read_byte()
        salt = reader.read(_SEIPD_V2_SALT_SIZE)
        try:
            cipher = SymmetricAlgorithm(cipher_id)
            aead = AEADAlgorithm(aead_id)
        except ValueError:
            msg = f"Unknown SEIPD v2 algorithms: cipher={cipher_id}, aead={aead_id}"
            raise UnsupportedAlgorithmError(msg, algorithm=f"{cipher_id}/{aead_id}") from None
        if chunk_size_octet > _SEIPD_V2_MAX_CHUNK_OCTET:
            msg = f"SEIPD v2 chunk size octet too large: {chunk_size_octet}"
            raise MalformedPacketError(msg, packet_tag=PacketTag.SEIPD)
        return SEIPDPacket(
            version=2,
            encrypted_data=reader.read_rest(),
            cipher=cipher,
            aead=aead,
            chunk_size_octet=chunk_size_octet,
            salt=salt,
        )

    msg = f"Unsupported SEIPD version: {version}"
    raise UnsupportedAlgorithmError(msg, algorithm=f"seipd-v{version}")


class SymmetricDecryptor:
    """
    Decrypts an encrypted-data packet with a resolved session key.

    Example:
        decryptor = SymmetricDecryptor()
        plaintext, integrity_ok = decryptor.decrypt(packet, session_key)
    """

    def __init__(self, *, allow_unsafe: bool = False) -> None:
        """
        Args:
            allow_unsafe: Return unauthenticated bytes instead of raising
                IntegrityError when integrity checking fails.
        """
        self._allow_unsafe = allow_unsafe

    def decrypt(self, packet: Packet, session_key: SessionKey) -> tuple[bytes, bool]:
        """
        Decrypt ``packet`` and verify its integrity protection.

        Args:
            packet: A SEIPD (tag 18) or SED (tag 9) packet.
            session_key: Session key recovered from the PKESK.

        Returns:
            Tuple of (decrypted packet stream, integrity_ok).

        Raises:
            IntegrityError: If integrity checking failed and the unsafe path is off.
            MalformedPacketError: If the packet is too short to be valid.
            UnsupportedAlgorithmError: For unknown packet versions or algorithms.
        """
        if session_key.is_cleared:
            msg = "Session key has already been discarded"
            raise RuntimeError(msg)

        match packet.packet_tag:
            case PacketTag.SEIPD:
                seipd = parse_seipd_packet(packet)
                if seipd.version == 1:
                    plaintext, integrity_ok = self._decrypt_seipd_v1(seipd, session_key)
                else:
                    plaintext, integrity_ok = self._decrypt_seipd_v2(seipd, session_key)
            case PacketTag.SED:
                sed = SEDPacket(encrypted_data=packet.body)
                plaintext, integrity_ok = self._decrypt_sed(sed, session_key)
            case PacketTag.AEAD_ENCRYPTED:
                msg = "Legacy AEAD encrypted data packets (tag 20) are not supported"
                raise UnsupportedAlgorithmError(msg, algorithm="aead-tag20")
            case _:
                msg = f"Expected an encrypted data packet, got tag {packet.tag}"
                raise MalformedPacketError(msg, packet_tag=packet.tag)

        if integrity_ok:
            return plaintext, True

        logger.warning("Integrity check failed", packet_tag=packet.tag, unsafe=self._allow_unsafe)
        if not self._allow_unsafe:
            msg = "Integrity check failed, data may be corrupted or tampered"
            raise IntegrityError(msg, packet_tag=packet.tag)
        return plaintext, False

    def _decrypt_seipd_v1(self, seipd: SEIPDPacket, session_key: SessionKey) -> tuple[bytes, bool]:
        block_size = session_key.block_size
        ciphertext = seipd.encrypted_data
        min_size = block_size + 2 + _MDC_PACKET_SIZE
        if len(ciphertext) < min_size:
            msg = f"Encrypted data too short: {len(ciphertext)} < {min_size}"
            raise MalformedPacketError(msg, packet_tag=PacketTag.SEIPD)

        plaintext = cfb_decrypt(ciphertext, bytes(session_key.key_data), session_key.algorithm)
        prefix_ok = check_prefix(plaintext, block_size)
        mdc_ok = verify_mdc(plaintext)
        return plaintext[block_size + 2 : -_MDC_PACKET_SIZE], prefix_ok and mdc_ok

    def _decrypt_seipd_v2(self, seipd: SEIPDPacket, session_key: SessionKey) -> tuple[bytes, bool]:
        if seipd.cipher != session_key.algorithm:
            msg = f"Session key is for {session_key.algorithm.name}, packet uses {seipd.cipher.name}"
            raise SessionKeyError(msg)
        if not seipd.cipher.is_aes:
            msg = f"AEAD with {seipd.cipher.name} is not supported"
            raise UnsupportedAlgorithmError(msg, algorithm=int(seipd.cipher))

        aead_cls = _aead_class(seipd.aead)
        tag_size = seipd.aead.tag_size
        data = seipd.encrypted_data
        if len(data) < tag_size:
            logger.debug("SEIPD v2 packet truncated before final tag", size=len(data))
            return b"", False

        header = bytes([0xC0 | PacketTag.SEIPD, 2, seipd.cipher, seipd.aead, seipd.chunk_size_octet])
        with _derive_message_key(session_key, seipd, header) as derived:
            key_size = seipd.cipher.key_size
            aead = aead_cls(bytes(derived[:key_size]))
            iv = bytes(derived[key_size:])

        body, final_tag = data[:-tag_size], data[-tag_size:]
        stride = seipd.chunk_size + tag_size
        plaintext = bytearray()
        index = 0
        for start in range(0, len(body), stride):
            chunk = body[start : start + stride]
            if len(chunk) < tag_size:
                return bytes(plaintext), False
            try:
                plaintext += aead.decrypt(iv + index.to_bytes(8, "big"), chunk, header)
            except InvalidTag:
                logger.debug("AEAD chunk authentication failed", chunk=index)
                return bytes(plaintext), False
            index += 1

        final_ad = header + len(plaintext).to_bytes(8, "big")
        try:
            aead.decrypt(iv + index.to_bytes(8, "big"), final_tag, final_ad)
        except InvalidTag:
            logger.debug("AEAD final tag authentication failed", chunks=index)
            return bytes(plaintext), False
        return bytes(plaintext), True

    @staticmethod
    def _decrypt_sed(sed: SEDPacket, session_key: SessionKey) -> tuple[bytes, bool]:
        block_size = session_key.block_size
        if len(sed.encrypted_data) < block_size + 2:
            msg = f"Encrypted data too short: {len(sed.encrypted_data)} < {block_size + 2}"
            raise MalformedPacketError(msg, packet_tag=PacketTag.SED)
        plaintext, _ = decrypt_openpgp_cfb(
            sed.encrypted_data, bytes(session_key.key_data), session_key.algorithm
        )
        logger.warning("Message uses SED packet without integrity protection")
        return plaintext[block_size + 2 :], False


def verify_mdc(plaintext: bytes) -> bool:
    """
    Check the Modification Detection Code trailing a SEIPD v1 plaintext.

    The SHA-1 covers everything up to and including the MDC packet header and is
    compared in constant time.
    """
    if len(plaintext) < _MDC_PACKET_SIZE:
        return False

    mdc_packet = plaintext[-_MDC_PACKET_SIZE:]
    if mdc_packet[:2] != _MDC_HEADER:
        return False

    stored_hash = mdc_packet[2:]
    computed_hash = hashlib.sha1(plaintext[:-_MDC_HASH_SIZE]).digest()
    return hmac.compare_digest(computed_hash, stored_hash)


def _aead_class(aead: AEADAlgorithm) -> type[AESOCB3] | type[AESGCM]:
    match aead:
        case AEADAlgorithm.OCB:
            return AESOCB3
        case AEADAlgorithm.GCM:
            return AESGCM
        case _:
            msg = f"AEAD mode {aead.name} is not supported"
            raise UnsupportedAlgorithmError(msg, algorithm=int(aead))


def _derive_message_key(session_key: SessionKey, seipd: SEIPDPacket, info: bytes) -> SecureBytes:
    length = seipd.cipher.key_size + seipd.aead.nonce_size - 8
    hkdf = HKDF(algorithm=hashes.SHA256(), length=length, salt=seipd.salt, info=info)
    return SecureBytes(hkdf.derive(bytes(session_key.key_data)))
