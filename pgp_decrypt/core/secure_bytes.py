"""Zeroable byte buffers for passphrases, secret key parameters and session keys."""

import ctypes
import ctypes.util
import hmac
import platform
import warnings
from collections.abc import Iterator
from typing import Self


class _PageLocker:
    """Best-effort mlock/VirtualLock wrapper. Every call degrades to a no-op."""

    def __init__(self) -> None:
        self._lock_fn = None
        self._unlock_fn = None
        system = platform.system()
        try:
            if system == "Windows":
                kernel32 = ctypes.windll.kernel32
                self._lock_fn = kernel32.VirtualLock
                self._unlock_fn = kernel32.VirtualUnlock
                ok = lambda res: bool(res)  # noqa: E731
            elif system in ("Linux", "Darwin"):
                default = "libc.so.6" if system == "Linux" else "libc.dylib"
                libc = ctypes.CDLL(ctypes.util.find_library("c") or default, use_errno=True)
                self._lock_fn = libc.mlock
                self._unlock_fn = libc.munlock
                ok = lambda res: res == 0  # noqa: E731
            else:
                return
            for fn in (self._lock_fn, self._unlock_fn):
                fn.argtypes = [ctypes.c_void_p, ctypes.c_size_t]
            self._ok = ok
        except (OSError, AttributeError):
            self._lock_fn = self._unlock_fn = None

    def lock(self, data: bytearray) -> bool:
        if self._lock_fn is None or not data:
            return False
        try:
            return self._ok(self._lock_fn(_address_of(data), len(data)))
        except Exception:
            return False

    def unlock(self, data: bytearray) -> None:
        if self._unlock_fn is None or not data:
            return
        try:
            self._unlock_fn(_address_of(data), len(data))
        except Exception:
            pass


def _address_of(data: bytearray) -> int:
    return ctypes.addressof((ctypes.c_char * len(data)).from_buffer(data))


def wipe(data: bytearray) -> None:
    """Overwrite a bytearray with zeros in place."""
    if not data:
        return
    try:
        ctypes.memset(_address_of(data), 0, len(data))
    except Exception as exc:
        warnings.warn(f"ctypes.memset failed, zeroing byte by byte: {exc}", RuntimeWarning)
        for i in range(len(data)):
            data[i] = 0


_locker = _PageLocker()


class SecureBytes:
    """
    Owned secret buffer that is zeroed on clear, on context exit and on collection.

    Conversions to ``bytes``/``str`` produce unmanaged copies; keep them short-lived.
    """

    __slots__ = ("_data", "_cleared", "_locked")

    def __init__(self, data: bytes | bytearray | memoryview = b"", *, lock: bool = False) -> None:
        self._data = bytearray(data)
        self._cleared = False
        self._locked = lock and _locker.lock(self._data)

    def __del__(self) -> None:
        self.clear()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *_: object) -> None:
        self.clear()

    def clear(self) -> None:
        """Zero memory and release the page lock. Idempotent."""
        if self._cleared:
            return
        wipe(self._data)
        if self._locked:
            _locker.unlock(self._data)
            self._locked = False
        self._cleared = True

    def __bytes__(self) -> bytes:
        self._check_cleared()
        return bytes(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __bool__(self) -> bool:
        return not self._cleared and len(self._data) > 0

    def __getitem__(self, index: slice) -> "SecureBytes":
        if not isinstance(index, slice):
            msg = "SecureBytes only supports slicing"
            raise TypeError(msg)
        self._check_cleared()
        view = memoryview(self._data)[index]
        try:
            return SecureBytes(view)
        finally:
            view.release()

    def __repr__(self) -> str:
        if self._cleared:
            return "SecureBytes(<cleared>)"
        lock_info = ", locked" if self._locked else ""
        return f"SecureBytes(<{len(self._data)} bytes{lock_info}>)"

    def __eq__(self, other: object) -> bool:
        """Constant-time comparison."""
        if isinstance(other, SecureBytes):
            if self._cleared or other._cleared:
                return False
            return hmac.compare_digest(self._data, other._data)
        if isinstance(other, (bytes, bytearray)):
            if self._cleared:
                return False
            return hmac.compare_digest(self._data, other)
        return NotImplemented

    def __hash__(self) -> int:
        raise TypeError("SecureBytes is not hashable")

    def __iter__(self) -> Iterator[int]:
        self._check_cleared()
        return iter(self._data)

    @property
    def is_locked(self) -> bool:
        return self._locked

    @property
    def is_cleared(self) -> bool:
        return self._cleared

    def decode(self, encoding: str = "utf-8") -> str:
        """Warning: returned string is not securely managed."""
        self._check_cleared()
        return self._data.decode(encoding)

    def checksum16(self) -> int:
        """Sum of all octets modulo 65536, as used by OpenPGP key and session key checks."""
        self._check_cleared()
        return sum(self._data) % 65536

    def _check_cleared(self) -> None:
        if self._cleared:
            raise RuntimeError("SecureBytes has been cleared")

    @classmethod
    def from_string(cls, s: str, encoding: str = "utf-8", *, lock: bool = False) -> Self:
        """Create from string. Zeros the intermediate buffer."""
        encoded = bytearray(s, encoding)
        try:
            return cls(encoded, lock=lock)
        finally:
            wipe(encoded)


def as_secure_bytes(value: SecureBytes | str | bytes | bytearray) -> SecureBytes:
    """Wrap a passphrase in SecureBytes; an existing SecureBytes is returned as is."""
    if isinstance(value, SecureBytes):
        return value
    if isinstance(value, str):
        return SecureBytes.from_string(value)
    return SecureBytes(value)
