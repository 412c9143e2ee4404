from __future__ import annotations

import pytest

from _fakes import MP4_BYTES, PNG_BYTES
from gemini_relay.media.audio import pcm_to_wav
from gemini_relay.media.sniff import base_mime_type, detect_mime_type, mime_parameters


@pytest.mark.parametrize(
    ("data", "expected"),
    [
        (PNG_BYTES, "image/png"),
        (b"\xff\xd8\xff\xe0rest", "image/jpeg"),
        (b"GIF89a....", "image/gif"),
        (b"%PDF-1.7", "application/pdf"),
        (b"OggS\x00\x02", "audio/ogg"),
        (b"ID3\x04\x00", "audio/mpeg"),
        (pcm_to_wav(b"\x00\x00", 24000), "audio/wav"),
        (b"RIFF\x00\x00\x00\x00WEBPVP8 ", "image/webp"),
        (MP4_BYTES, "video/mp4"),
        (b"\x00\x00\x00\x18ftypheic", "image/heic"),
        (b"\x1a\x45\xdf\xa3webm", "video/webm"),
        (b"<!DOCTYPE html><html></html>", "text/html"),
        ("plain text, ünïcode".encode(), "text/plain"),
        (b"", "text/plain"),
        (b"\x01\x02\x00\x03", "application/octet-stream"),
    ],
)
def test_detect_mime_type(data: bytes, expected: str) -> None:
    assert detect_mime_type(data) == expected


def test_mime_type_helpers() -> None:
    assert base_mime_type("Text/HTML; charset=utf-8") == "text/html"
    assert mime_parameters("audio/L16;codec=pcm;rate=24000") == {"codec": "pcm", "rate": "24000"}
    assert mime_parameters("image/png") == {}
