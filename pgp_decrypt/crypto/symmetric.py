"""
Block cipher primitives for OpenPGP.

OpenPGP uses CFB in two flavours: plain CFB (secret key protection and SEIPD v1)
and the legacy "OpenPGP CFB" with a resynchronisation step after the random
prefix (Symmetrically Encrypted Data packets).
"""

from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.decrepit.ciphers import algorithms as decrepit_algorithms
from cryptography.hazmat.primitives.ciphers import Cipher, CipherAlgorithm, algorithms, modes

from pgp_decrypt.exceptions import UnsupportedAlgorithmError
from pgp_decrypt.models.crypto import SymmetricAlgorithm


def cipher_algorithm(algorithm: SymmetricAlgorithm, key: bytes) -> CipherAlgorithm:
    """
    Map an OpenPGP cipher id to a cryptography cipher instance.

    Raises:
        UnsupportedAlgorithmError: For Twofish and plaintext.
    """
    if len(key) != algorithm.key_size:
        msg = f"{algorithm.name} needs a {algorithm.key_size}-byte key, got {len(key)}"
        raise ValueError(msg)

    match algorithm:
        case SymmetricAlgorithm.AES_128 | SymmetricAlgorithm.AES_192 | SymmetricAlgorithm.AES_256:
            return algorithms.AES(key)
        case (
            SymmetricAlgorithm.CAMELLIA_128
            | SymmetricAlgorithm.CAMELLIA_192
            | SymmetricAlgorithm.CAMELLIA_256
        ):
            return algorithms.Camellia(key)
        case SymmetricAlgorithm.CAST5:
            return decrepit_algorithms.CAST5(key)
        case SymmetricAlgorithm.IDEA:
            return decrepit_algorithms.IDEA(key)
        case SymmetricAlgorithm.BLOWFISH:
            return decrepit_algorithms.Blowfish(key)
        case SymmetricAlgorithm.TRIPLE_DES:
            return decrepit_algorithms.TripleDES(key)
        case _:
            msg = f"Unsupported symmetric algorithm: {algorithm.name}"
            raise UnsupportedAlgorithmError(msg, algorithm=int(algorithm))


def cfb_decrypt(
    ciphertext: bytes, key: bytes, algorithm: SymmetricAlgorithm, iv: bytes | None = None
) -> bytes:
    """Plain CFB decryption; ``iv`` defaults to an all-zero block."""
    if iv is None:
        iv = bytes(algorithm.block_size)
    cipher = Cipher(cipher_algorithm(algorithm, key), modes.CFB(iv), backend=default_backend())
    decryptor = cipher.decryptor()
    return decryptor.update(ciphertext) + decryptor.finalize()


def decrypt_openpgp_cfb(
    ciphertext: bytes, key: bytes, algorithm: SymmetricAlgorithm
) -> tuple[bytes, bool]:
    """
    Decrypt the resynchronising CFB variant used by SED packets.

    Returns:
        Tuple of (plaintext including the random prefix, prefix quick check held).
    """
    block_size = algorithm.block_size
    prefix_size = block_size + 2
    prefix_ciphertext = ciphertext[:prefix_size]
    rest_ciphertext = ciphertext[prefix_size:]

    # Decrypt prefix with zero IV
    prefix_plaintext = cfb_decrypt(prefix_ciphertext, key, algorithm)
    quick_check = check_prefix(prefix_plaintext, block_size)

    # Resync IV for rest of data
    resync_iv = prefix_ciphertext[2:prefix_size]
    rest_plaintext = cfb_decrypt(rest_ciphertext, key, algorithm, resync_iv) if rest_ciphertext else b""

    return prefix_plaintext + rest_plaintext, quick_check


def check_prefix(plaintext: bytes, block_size: int) -> bool:
    """Last two octets of the random prefix must repeat right after it."""
    if len(plaintext) < block_size + 2:
        return False
    return plaintext[block_size - 2 : block_size] == plaintext[block_size : block_size + 2]
