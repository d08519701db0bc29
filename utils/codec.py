"""
Binary-safe text encoding for image attachments in deck bundles.

Images can be several megabytes, so both directions work in fixed-size
chunks. Encoding chunks are a multiple of 3 bytes and decoding chunks a
multiple of 4 characters, which keeps the chunked output identical to a
one-shot base64 call.
"""
import base64
import binascii

from database.errors import FormatError

ENCODE_CHUNK = 3 * 8192
DECODE_CHUNK = 4 * 8192


def encode_image(data: bytes) -> str:
    parts = []
    for start in range(0, len(data), ENCODE_CHUNK):
        parts.append(base64.b64encode(data[start:start + ENCODE_CHUNK]).decode('ascii'))
    return ''.join(parts)


def decode_image(text: str) -> bytes:
    if not isinstance(text, str):
        raise FormatError(f"Image must be a base64 string, got {type(text).__name__}")

    compact = ''.join(text.split())
    if len(compact) % 4:
        raise FormatError("Image data is not valid base64: bad length")
    if '=' in compact[:-2]:
        raise FormatError("Image data is not valid base64: padding before the end")

    parts = []
    for start in range(0, len(compact), DECODE_CHUNK):
        chunk = compact[start:start + DECODE_CHUNK]
        try:
            parts.append(base64.b64decode(chunk, validate=True))
        except (binascii.Error, ValueError) as e:
            raise FormatError(f"Image data is not valid base64: {e}") from e
    return b''.join(parts)
