"""
Vault Codec: base64 text representation of raw byte buffers.

Every byte field of a persisted record (salt, nonce, ciphertext) goes
through these two helpers.
"""
import base64
import binascii


def b64encode(data: bytes) -> str:
    """Encode raw bytes as standard base64 text."""
    return base64.b64encode(data).decode("ascii")


def b64decode(text: str) -> bytes:
    """Decode standard base64 text back into raw bytes.

    Raises:
        ValueError: If ``text`` is not valid base64.
    """
    try:
        return base64.b64decode(text.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as err:
        raise ValueError(f"invalid base64 data: {err}") from err
