import gc
from collections.abc import Callable

import pytest

from pgp_decrypt.core.secure_bytes import SecureBytes, as_secure_bytes, wipe


def test_create_from_bytes_provides_access_to_data() -> None:
    secure_bytes = SecureBytes(b"secret")

    assert bytes(secure_bytes) == b"secret"
    assert len(secure_bytes) == 6
    assert secure_bytes.decode() == "secret"
    assert list(secure_bytes) == [115, 101, 99, 114, 101, 116]
    assert not secure_bytes.is_cleared
    secure_bytes.clear()


def test_from_string_creates_secure_bytes() -> None:
    secure_bytes = SecureBytes.from_string("passphrase")

    assert bytes(secure_bytes) == b"passphrase"
    secure_bytes.clear()


def test_original_data_not_modified_after_clear() -> None:
    original = bytearray(b"secret")
    secure_bytes = SecureBytes(original)
    secure_bytes.clear()

    assert original == bytearray(b"secret")


def test_clear_zeros_data_and_sets_flag() -> None:
    secure_bytes = SecureBytes(b"secret")
    secure_bytes.clear()

    assert secure_bytes.is_cleared
    assert secure_bytes._data == bytearray(6)


def test_clear_is_idempotent() -> None:
    secure_bytes = SecureBytes(b"secret")
    secure_bytes.clear()
    secure_bytes.clear()

    assert secure_bytes.is_cleared


def test_context_manager_clears_on_exit() -> None:
    secure_bytes = SecureBytes(b"secret")
    with secure_bytes:
        assert not secure_bytes.is_cleared
    assert secure_bytes.is_cleared


def test_context_manager_clears_on_error() -> None:
    secure_bytes = SecureBytes(b"secret")

    with pytest.raises(ValueError), secure_bytes:
        raise ValueError("boom")

    assert secure_bytes.is_cleared


def test_destructor_clears_data() -> None:
    secure_bytes = SecureBytes(b"secret")
    data_reference = secure_bytes._data

    del secure_bytes
    gc.collect()

    assert all(byte == 0 for byte in data_reference)


@pytest.mark.parametrize("access", [bytes, list, SecureBytes.decode, SecureBytes.checksum16])
def test_access_after_clear_raises_runtime_error(access: Callable[[SecureBytes], object]) -> None:
    secure_bytes = SecureBytes(b"hello")
    secure_bytes.clear()

    with pytest.raises(RuntimeError, match="SecureBytes has been cleared"):
        access(secure_bytes)


def test_slicing_returns_independent_secure_bytes() -> None:
    secure_bytes = SecureBytes(b"0123456789")

    head = secure_bytes[:4]
    secure_bytes.clear()

    assert isinstance(head, SecureBytes)
    assert bytes(head) == b"0123"
    head.clear()


def test_indexing_is_rejected() -> None:
    secure_bytes = SecureBytes(b"secret")

    with pytest.raises(TypeError, match="only supports slicing"):
        secure_bytes[0]
    secure_bytes.clear()


def test_checksum16_sums_octets_modulo_65536() -> None:
    secure_bytes = SecureBytes(b"\xff" * 300)

    assert secure_bytes.checksum16() == (255 * 300) % 65536
    secure_bytes.clear()


def test_equality_with_same_secure_bytes() -> None:
    secure_bytes_1 = SecureBytes(b"secret")
    secure_bytes_2 = SecureBytes(b"secret")

    assert secure_bytes_1 == secure_bytes_2
    secure_bytes_1.clear()
    secure_bytes_2.clear()


def test_equality_with_bytes() -> None:
    secure_bytes = SecureBytes(b"secret")

    assert secure_bytes == b"secret"
    assert secure_bytes != b"other"
    secure_bytes.clear()


def test_cleared_secure_bytes_not_equal() -> None:
    secure_bytes_1 = SecureBytes(b"secret")
    secure_bytes_2 = SecureBytes(b"secret")
    secure_bytes_1.clear()

    assert secure_bytes_1 != secure_bytes_2
    assert secure_bytes_1 != b"secret"
    secure_bytes_2.clear()


def test_secure_bytes_is_not_hashable() -> None:
    secure_bytes = SecureBytes(b"secret")

    with pytest.raises(TypeError, match="not hashable"):
        hash(secure_bytes)
    secure_bytes.clear()


def test_bool_reflects_content_and_state() -> None:
    secure_bytes = SecureBytes(b"secret")

    assert bool(secure_bytes) is True
    assert bool(SecureBytes()) is False
    secure_bytes.clear()
    assert bool(secure_bytes) is False


def test_repr_never_shows_content() -> None:
    secure_bytes = SecureBytes(b"secret")

    assert repr(secure_bytes) == "SecureBytes(<6 bytes>)"
    secure_bytes.clear()
    assert repr(secure_bytes) == "SecureBytes(<cleared>)"


def test_wipe_clears_bytearray() -> None:
    data = bytearray(b"sensitive")
    wipe(data)
    assert all(byte == 0 for byte in data)


def test_wipe_handles_empty_bytearray() -> None:
    data = bytearray()
    wipe(data)
    assert len(data) == 0


def test_as_secure_bytes_wraps_passphrase_forms() -> None:
    existing = SecureBytes(b"pw")

    assert as_secure_bytes(existing) is existing
    assert bytes(as_secure_bytes("pw")) == b"pw"
    assert bytes(as_secure_bytes(b"pw")) == b"pw"
    assert bytes(as_secure_bytes(bytearray(b"pw"))) == b"pw"
