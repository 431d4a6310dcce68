"""
Vault Models: persisted records and the decrypted vault document.

Persisted records (``EncryptedPayload``, ``VaultMetadata``) serialize with
camelCase field names and base64 text for every byte field. The
``VaultDocument`` only ever exists in plaintext inside an unlocked
``VaultSession``.
"""
from datetime import datetime
from typing import Annotated, Generic, Optional, TypeVar

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
)
from pydantic.alias_generators import to_camel

from .codec import b64encode, b64decode

NONCE_SIZE = 12  # 96-bit GCM nonce
TAG_SIZE = 16
SALT_SIZE = 16
MIN_ITERATIONS = 250_000


def _decode_b64(value):
    if isinstance(value, str):
        return b64decode(value)
    return value


B64Bytes = Annotated[
    bytes,
    BeforeValidator(_decode_b64),
    PlainSerializer(b64encode, return_type=str, when_used="json"),
]


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EncryptedPayload(_Record):
    """A nonce and AEAD ciphertext (tag included) produced by one encryption."""

    nonce: B64Bytes
    ciphertext: B64Bytes
    updated_at: Optional[datetime] = None

    @field_validator("nonce")
    @classmethod
    def validate_nonce(cls, v: bytes) -> bytes:
        if len(v) != NONCE_SIZE:
            raise ValueError(f"nonce must be {NONCE_SIZE} bytes, got {len(v)}")
        return v

    @field_validator("ciphertext")
    @classmethod
    def validate_ciphertext(cls, v: bytes) -> bytes:
        if len(v) < TAG_SIZE:
            raise ValueError(
                f"ciphertext too short: {len(v)} bytes (minimum {TAG_SIZE})"
            )
        return v


class VaultMetadata(_Record):
    """Non-secret record describing how to rederive the KEK and unwrap the DEK.

    Stored under ``vault.meta``; its presence means setup has happened.
    """

    salt: B64Bytes
    iterations: int = Field(ge=MIN_ITERATIONS)
    wrapped_dek: EncryptedPayload
    pin_digits: int = Field(ge=4, le=12)
    created_at: datetime

    @field_validator("salt")
    @classmethod
    def validate_salt(cls, v: bytes) -> bytes:
        if len(v) < SALT_SIZE:
            raise ValueError(f"salt must be at least {SALT_SIZE} bytes")
        return v


# ---------------------------------------------------------------------------
# Vault document
# ---------------------------------------------------------------------------

class AccountItem(BaseModel):
    id: str
    title: str
    username: str
    password: str


class LinkItem(BaseModel):
    id: str
    title: str
    url: str


ItemT = TypeVar("ItemT")


def _ensure_unique_ids(values: list, what: str) -> list:
    seen = set()
    for value in values:
        if value.id in seen:
            raise ValueError(f"duplicate {what} id: {value.id}")
        seen.add(value.id)
    return values


class Category(BaseModel, Generic[ItemT]):
    """Named group of items; item ids are unique within the category."""

    id: str
    name: str
    items: list[ItemT] = Field(default_factory=list)

    @field_validator("items")
    @classmethod
    def validate_items(cls, v: list) -> list:
        return _ensure_unique_ids(v, "item")


class AccountSection(BaseModel):
    categories: list[Category[AccountItem]] = Field(default_factory=list)

    @field_validator("categories")
    @classmethod
    def validate_categories(cls, v: list) -> list:
        return _ensure_unique_ids(v, "category")


class LinkSection(BaseModel):
    categories: list[Category[LinkItem]] = Field(default_factory=list)

    @field_validator("categories")
    @classmethod
    def validate_categories(cls, v: list) -> list:
        return _ensure_unique_ids(v, "category")


class VaultDocument(BaseModel):
    """Decrypted vault content: account and link categories."""

    accounts: AccountSection = Field(default_factory=AccountSection)
    links: LinkSection = Field(default_factory=LinkSection)

    @classmethod
    def empty(cls) -> "VaultDocument":
        return cls()
