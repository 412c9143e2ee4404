from __future__ import annotations

import struct

import pytest

from gemini_relay.core.errors import MediaConversionError
from gemini_relay.media import audio
from gemini_relay.media.audio import WAV_HEADER_SIZE, pcm_sample_rate, pcm_to_wav, wav_to_ogg


def test_wav_header_fields() -> None:
    silence = b"\x00\x00" * 240
    wav = pcm_to_wav(silence, 24000)

    riff, chunk_size, wave = struct.unpack_from("<4sI4s", wav, 0)
    fmt, fmt_size, audio_format, channels, sample_rate, byte_rate, block_align, bits = struct.unpack_from(
        "<4sIHHIIHH", wav, 12
    )
    data, data_size = struct.unpack_from("<4sI", wav, 36)

    assert (riff, wave, fmt, data) == (b"RIFF", b"WAVE", b"fmt ", b"data")
    assert chunk_size == 36 + len(silence)
    assert (fmt_size, audio_format, channels) == (16, 1, 1)
    assert sample_rate == 24000
    assert bits == 16
    assert byte_rate == 24000 * 2
    assert block_align == 2
    assert data_size == len(silence)
    assert wav[WAV_HEADER_SIZE:] == silence


def test_wav_header_for_stereo_8bit() -> None:
    wav = pcm_to_wav(b"\x80" * 10, 8000, bit_depth=8, num_channels=2)

    _, _, _, channels, sample_rate, byte_rate, block_align, bits = struct.unpack_from("<4sIHHIIHH", wav, 12)
    assert (channels, sample_rate, byte_rate, block_align, bits) == (2, 8000, 16000, 2, 8)


@pytest.mark.parametrize(
    ("rate", "bits", "channels"),
    [(0, 16, 1), (24000, 12, 1), (24000, 16, 0)],
)
def test_invalid_pcm_parameters(rate: int, bits: int, channels: int) -> None:
    with pytest.raises(MediaConversionError):
        pcm_to_wav(b"\x00\x00", rate, bit_depth=bits, num_channels=channels)


@pytest.mark.parametrize(
    ("mime_type", "expected"),
    [
        ("audio/L16;codec=pcm;rate=24000", 24000),
        ("audio/pcm;rate=16000", 16000),
        ("audio/L16;codec=pcm", 0),
        ("audio/L16;codec=pcm;rate=fast", 0),
        ("audio/ogg", None),
        ("image/png", None),
    ],
)
def test_pcm_sample_rate(mime_type: str, expected: int | None) -> None:
    assert pcm_sample_rate(mime_type) == expected


@pytest.mark.asyncio
async def test_missing_ffmpeg_raises_conversion_error() -> None:
    with pytest.raises(MediaConversionError):
        await wav_to_ogg(pcm_to_wav(b"\x00\x00", 24000), ffmpeg_path="/nonexistent/ffmpeg")


def test_ffmpeg_arguments_use_opus_in_ogg() -> None:
    args = audio.FFMPEG_ARGS

    assert args[args.index("-c:a") + 1] == "libopus"
    assert args[args.index("-f") + 1] == "ogg"
    assert args[-1] == "pipe:1"
