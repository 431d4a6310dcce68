"""
Tests for the vault crypto core.

Tests cover:
- base64 codec
- PBKDF2 key derivation determinism and input checks
- AES-GCM envelope round-trip, wrong key, tampering and nonce freshness
- Structured document encryption and deserialization errors
"""
import hashlib
import os

import orjson
import pytest

from pinvault.vault.codec import b64encode, b64decode
from pinvault.vault.crypto import (
    KEY_LENGTH,
    decrypt,
    decrypt_document,
    derive_key,
    encrypt,
    encrypt_document,
    generate_key,
    generate_salt,
    zero_bytes,
)
from pinvault.vault.exceptions import AuthenticationError, DeserializationError
from pinvault.vault.models import (
    EncryptedPayload,
    MIN_ITERATIONS,
    NONCE_SIZE,
    VaultDocument,
)
from pinvault.vault.document import add_category


@pytest.fixture
def key():
    return generate_key()


@pytest.fixture
def salt():
    return generate_salt()


# --- Codec ---

class TestCodec:

    def test_roundtrip(self):
        data = os.urandom(33)
        assert b64decode(b64encode(data)) == data

    def test_encode_is_text(self):
        assert b64encode(b"\x00\xff") == "AP8="

    def test_invalid_base64(self):
        with pytest.raises(ValueError):
            b64decode("not*base64!")


# --- Key derivation ---

class TestDeriveKey:

    def test_matches_pbkdf2_sha256(self, salt):
        """Derived key equals PBKDF2-HMAC-SHA256 computed independently."""
        expected = hashlib.pbkdf2_hmac("sha256", b"1234", salt, MIN_ITERATIONS, 32)
        assert derive_key("1234", salt, MIN_ITERATIONS) == expected

    def test_deterministic(self, salt):
        """Identical inputs always yield an identical key."""
        assert derive_key("1234", salt, MIN_ITERATIONS) == derive_key(
            "1234", salt, MIN_ITERATIONS
        )

    def test_key_length(self, salt):
        assert len(derive_key("1234", salt, MIN_ITERATIONS)) == KEY_LENGTH

    def test_changing_pin_changes_key(self, salt):
        assert derive_key("1234", salt, MIN_ITERATIONS) != derive_key(
            "1235", salt, MIN_ITERATIONS
        )

    def test_changing_salt_changes_key(self, salt):
        other = bytes([salt[0] ^ 1]) + salt[1:]
        assert derive_key("1234", salt, MIN_ITERATIONS) != derive_key(
            "1234", other, MIN_ITERATIONS
        )

    def test_changing_iterations_changes_key(self, salt):
        assert derive_key("1234", salt, MIN_ITERATIONS) != derive_key(
            "1234", salt, MIN_ITERATIONS + 1
        )

    def test_any_string_is_key_material(self, salt):
        """Non-digit and empty PINs are accepted."""
        assert len(derive_key("", salt, MIN_ITERATIONS)) == KEY_LENGTH
        assert len(derive_key("pässwörd", salt, MIN_ITERATIONS)) == KEY_LENGTH

    def test_lone_surrogate_pin(self, salt):
        """A str that is not valid UTF-8 still derives a key."""
        key = derive_key("\ud800", salt, MIN_ITERATIONS)
        assert len(key) == KEY_LENGTH
        assert key != derive_key("\ud801", salt, MIN_ITERATIONS)

    def test_iterations_below_minimum(self, salt):
        with pytest.raises(ValueError):
            derive_key("1234", salt, MIN_ITERATIONS - 1)

    def test_empty_salt(self):
        with pytest.raises(ValueError):
            derive_key("1234", b"", MIN_ITERATIONS)


# --- Byte-level envelope ---

class TestEnvelope:

    def test_roundtrip(self, key):
        payload = encrypt(key, b"secret data")
        assert decrypt(key, payload) == b"secret data"

    def test_empty_plaintext(self, key):
        assert decrypt(key, encrypt(key, b"")) == b""

    def test_payload_shape(self, key):
        """Nonce is 12 bytes; ciphertext carries the 16-byte tag."""
        payload = encrypt(key, b"abc")
        assert len(payload.nonce) == NONCE_SIZE
        assert len(payload.ciphertext) == 3 + 16
        assert payload.updated_at is not None

    def test_wrong_key(self, key):
        payload = encrypt(key, b"secret data")
        with pytest.raises(AuthenticationError):
            decrypt(generate_key(), payload)

    @pytest.mark.parametrize("position", [0, 5, -1])
    def test_tampered_ciphertext(self, key, position):
        """Flipping any ciphertext bit fails authentication."""
        payload = encrypt(key, b"secret data")
        ct = bytearray(payload.ciphertext)
        ct[position] ^= 0x01
        tampered = payload.model_copy(update={"ciphertext": bytes(ct)})
        with pytest.raises(AuthenticationError):
            decrypt(key, tampered)

    def test_tampered_nonce(self, key):
        payload = encrypt(key, b"secret data")
        nonce = bytearray(payload.nonce)
        nonce[0] ^= 0x80
        tampered = payload.model_copy(update={"nonce": bytes(nonce)})
        with pytest.raises(AuthenticationError):
            decrypt(key, tampered)

    def test_nonces_never_repeat(self, key):
        """Repeated encryptions of the same plaintext use fresh nonces."""
        nonces = {encrypt(key, b"same").nonce for _ in range(2000)}
        assert len(nonces) == 2000

    def test_same_plaintext_different_ciphertext(self, key):
        assert encrypt(key, b"same").ciphertext != encrypt(key, b"same").ciphertext

    def test_uses_injected_random_source(self, key):
        calls = []

        def source(n):
            calls.append(n)
            return os.urandom(n)

        encrypt(key, b"x", random_bytes=source)
        assert calls == [NONCE_SIZE]

    def test_short_random_source_rejected(self, key):
        with pytest.raises(ValueError):
            encrypt(key, b"x", random_bytes=lambda n: b"\x00")

    def test_invalid_key_length(self):
        with pytest.raises(ValueError):
            encrypt(b"short", b"x")


# --- Structured documents ---

class TestDocumentEnvelope:

    def test_roundtrip_empty(self, key):
        doc = VaultDocument.empty()
        assert decrypt_document(key, encrypt_document(key, doc), VaultDocument) == doc

    def test_roundtrip_with_content(self, key):
        doc = add_category("accounts", "Work")(VaultDocument.empty())
        restored = decrypt_document(key, encrypt_document(key, doc), VaultDocument)
        assert restored == doc
        assert restored.accounts.categories[0].name == "Work"

    def test_wrong_key_is_authentication_error(self, key):
        payload = encrypt_document(key, VaultDocument.empty())
        with pytest.raises(AuthenticationError):
            decrypt_document(generate_key(), payload, VaultDocument)

    def test_account_missing_fields(self, key):
        """An account without username/password is a deserialization error."""
        payload = encrypt(key, orjson.dumps({
            "accounts": {"categories": [{
                "id": "c1", "name": "Work",
                "items": [{"id": "i1", "title": "Mail"}],
            }]},
        }))
        with pytest.raises(DeserializationError):
            decrypt_document(key, payload, VaultDocument)

    def test_invalid_json(self, key):
        """Valid ciphertext holding non-JSON bytes is a deserialization error."""
        payload = encrypt(key, b"\xffnot json")
        with pytest.raises(DeserializationError):
            decrypt_document(key, payload, VaultDocument)

    def test_wrong_shape(self, key):
        payload = encrypt(key, orjson.dumps({"accounts": 5}))
        with pytest.raises(DeserializationError):
            decrypt_document(key, payload, VaultDocument)

    def test_deserialization_is_not_authentication_error(self):
        assert not issubclass(DeserializationError, AuthenticationError)

    def test_serialization_is_canonical(self, key):
        """Serialized documents use sorted keys."""
        from pinvault.vault.crypto import serialize_document
        data = serialize_document(VaultDocument.empty())
        assert data == b'{"accounts":{"categories":[]},"links":{"categories":[]}}'


class TestZeroBytes:

    def test_zeroes_bytearray(self):
        buf = bytearray(b"secret")
        zero_bytes(buf)
        assert buf == bytearray(6)

    def test_ignores_immutable(self):
        data = b"secret"
        zero_bytes(data)
        assert data == b"secret"
