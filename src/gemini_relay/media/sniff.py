"""Content-type detection from leading bytes."""

from __future__ import annotations

OCTET_STREAM = "application/octet-stream"

# (offset, signature, mime type)
_SIGNATURES: list[tuple[int, bytes, str]] = [
    (0, b"\x89PNG\r\n\x1a\n", "image/png"),
    (0, b"\xff\xd8\xff", "image/jpeg"),
    (0, b"GIF87a", "image/gif"),
    (0, b"GIF89a", "image/gif"),
    (0, b"%PDF-", "application/pdf"),
    (0, b"OggS", "audio/ogg"),
    (0, b"fLaC", "audio/flac"),
    (0, b"ID3", "audio/mpeg"),
    (0, b"\x1a\x45\xdf\xa3", "video/webm"),
    (0, b"PK\x03\x04", "application/zip"),
]


def _sniff_riff(data: bytes) -> str | None:
    if data[:4] != b"RIFF" or len(data) < 12:
        return None
    return {
        b"WAVE": "audio/wav",
        b"WEBP": "image/webp",
        b"AVI ": "video/x-msvideo",
    }.get(data[8:12])


def _sniff_iso_media(data: bytes) -> str | None:
    if data[4:8] != b"ftyp":
        return None
    brand = data[8:12]
    if brand in (b"heic", b"heix", b"mif1"):
        return "image/heic"
    if brand in (b"M4A ", b"M4B "):
        return "audio/mp4"
    if brand == b"qt  ":
        return "video/quicktime"
    return "video/mp4"


def detect_mime_type(data: bytes) -> str:
    """Best-effort MIME type of `data`; falls back to text/plain or octet-stream."""
    if not data:
        return "text/plain"

    for offset, signature, mime_type in _SIGNATURES:
        if data[offset : offset + len(signature)] == signature:
            return mime_type

    if mime_type := _sniff_riff(data) or _sniff_iso_media(data):
        return mime_type

    # MPEG audio frame sync
    if len(data) > 1 and data[0] == 0xFF and (data[1] & 0xE0) == 0xE0:
        return "audio/mpeg"

    head = data[:512]
    if b"\x00" in head:
        return OCTET_STREAM
    try:
        head.decode("utf-8")
    except UnicodeDecodeError as e:
        # a multi-byte sequence cut at the boundary is still text
        if e.start < len(head) - 3:
            return OCTET_STREAM

    lowered = head.lstrip().lower()
    if lowered.startswith((b"<!doctype html", b"<html")):
        return "text/html"
    return "text/plain"


def base_mime_type(content_type: str) -> str:
    """`text/html; charset=utf-8` -> `text/html`"""
    return content_type.split(";", 1)[0].strip().lower()


def mime_parameters(content_type: str) -> dict[str, str]:
    """Parameters of a MIME type, e.g. `audio/L16;codec=pcm;rate=24000`."""
    params: dict[str, str] = {}
    for item in content_type.split(";")[1:]:
        key, sep, value = item.partition("=")
        if sep:
            params[key.strip().lower()] = value.strip()
    return params
