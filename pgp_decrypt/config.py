"""
Decryption engine configuration.
"""

from dataclasses import dataclass

_MiB = 1024 * 1024


@dataclass(frozen=True, kw_only=True)
class DecryptConfig:
    """
    Attributes:
        allow_unsafe_plaintext: Return plaintext even when integrity checking failed.
            The result is flagged as untrusted; meant for diagnostics only.
        verify_signatures: Check embedded signatures when a public key is supplied.
        max_input_size: Largest encrypted message accepted, in bytes.
        max_decompressed_size: Upper bound on inflated compressed data, in bytes.
        max_nesting_depth: Maximum nesting of compressed data packets.
        max_s2k_count: Largest iterated S2K byte count honoured when unlocking keys.
        timeout: Deadline in seconds for the async facade.
        expose_error_detail: Let boundary adapters show the detailed error taxonomy.
    """

    allow_unsafe_plaintext: bool = False
    verify_signatures: bool = True
    max_input_size: int = 256 * _MiB
    max_decompressed_size: int = 1024 * _MiB
    max_nesting_depth: int = 8
    max_s2k_count: int = 65011712
    timeout: float = 30.0
    expose_error_detail: bool = False

    def __post_init__(self) -> None:
        if self.max_input_size <= 0:
            msg = "max_input_size must be positive"
            raise ValueError(msg)
        if self.max_decompressed_size <= 0:
            msg = "max_decompressed_size must be positive"
            raise ValueError(msg)
        if self.max_nesting_depth < 1:
            msg = "max_nesting_depth must be at least 1"
            raise ValueError(msg)
        if self.max_s2k_count <= 0:
            msg = "max_s2k_count must be positive"
            raise ValueError(msg)
        if self.timeout <= 0:
            msg = "timeout must be positive"
            raise ValueError(msg)
