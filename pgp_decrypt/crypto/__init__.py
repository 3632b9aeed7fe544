"""
OpenPGP cryptographic operations.

This module provides:
- Packet stream parsing and ASCII armor decoding
- Key block parsing, key selection and passphrase unlocking
- Session key recovery (RSA, ECDH, X25519)
- Integrity-checked symmetric decryption (SEIPD v1/v2, legacy SED)
- Signature verification
"""

from pgp_decrypt.crypto.armor import is_armored, unarmor
from pgp_decrypt.crypto.decryptor import SymmetricDecryptor, parse_seipd_packet
from pgp_decrypt.crypto.keys import (
    KeyBlock,
    PrivateKey,
    PublicKey,
    load_private_key,
    load_public_key,
    parse_key_block,
)
from pgp_decrypt.crypto.message import MessageContent, parse_message_body
from pgp_decrypt.crypto.packets import PacketReader, parse_packet_tag, read_mpi, read_packet, read_packets
from pgp_decrypt.crypto.session_key import SessionKeyResolver, parse_pkesk_packet
from pgp_decrypt.crypto.signature import parse_signature_packet
from pgp_decrypt.crypto.symmetric import decrypt_openpgp_cfb
from pgp_decrypt.crypto.verifier import SignatureVerifier, verify_detached

__all__ = [
    # Packets
    "PacketReader",
    "read_packets",
    "read_packet",
    "parse_packet_tag",
    "read_mpi",
    "unarmor",
    "is_armored",
    # Keys
    "KeyBlock",
    "PrivateKey",
    "PublicKey",
    "parse_key_block",
    "load_private_key",
    "load_public_key",
    # Session keys and decryption
    "SessionKeyResolver",
    "parse_pkesk_packet",
    "SymmetricDecryptor",
    "parse_seipd_packet",
    "decrypt_openpgp_cfb",
    "MessageContent",
    "parse_message_body",
    # Signatures
    "SignatureVerifier",
    "parse_signature_packet",
    "verify_detached",
]
