"""PCM to WAV wrapping and OGG/Opus transcoding via ffmpeg."""

from __future__ import annotations

import asyncio
import struct

from gemini_relay.core.errors import MediaConversionError
from gemini_relay.log import get_logger
from gemini_relay.media.sniff import base_mime_type, mime_parameters

logger = get_logger(__name__)

WAV_BIT_DEPTH = 16
WAV_NUM_CHANNELS = 1
WAV_HEADER_SIZE = 44

FFMPEG_ARGS = [
    "-hide_banner",
    "-loglevel", "error",
    "-i", "pipe:0",
    "-c:a", "libopus",
    "-b:a", "128k",
    "-f", "ogg",
    "pipe:1",
]


def pcm_to_wav(
    pcm: bytes,
    sample_rate: int,
    bit_depth: int = WAV_BIT_DEPTH,
    num_channels: int = WAV_NUM_CHANNELS,
) -> bytes:
    """Wrap raw little-endian PCM samples in a canonical 44-byte WAV header."""
    if sample_rate <= 0 or bit_depth <= 0 or bit_depth % 8 or num_channels <= 0:
        raise MediaConversionError(
            f"invalid PCM parameters: rate={sample_rate}, bits={bit_depth}, channels={num_channels}"
        )

    data_len = len(pcm)
    block_align = num_channels * bit_depth // 8
    byte_rate = sample_rate * block_align
    header = struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        36 + data_len,
        b"WAVE",
        b"fmt ",
        16,  # fmt chunk size
        1,  # PCM
        num_channels,
        sample_rate,
        byte_rate,
        block_align,
        bit_depth,
        b"data",
        data_len,
    )
    return header + pcm


async def wav_to_ogg(wav: bytes, ffmpeg_path: str = "ffmpeg") -> bytes:
    """Transcode WAV bytes to OGG/Opus by piping through ffmpeg."""
    try:
        process = await asyncio.create_subprocess_exec(
            ffmpeg_path,
            *FFMPEG_ARGS,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise MediaConversionError(f"ffmpeg not found at '{ffmpeg_path}'") from e

    stdout, stderr = await process.communicate(input=wav)
    if process.returncode != 0:
        detail = stderr.decode("utf-8", errors="replace").strip() or "(no output)"
        raise MediaConversionError(f"ffmpeg error (exit {process.returncode}): {detail}")
    return stdout


def pcm_sample_rate(mime_type: str) -> int | None:
    """Sample rate of a raw PCM MIME type, or None if `mime_type` is not raw PCM.

    Accepts both `audio/L16;codec=pcm;rate=24000` and `audio/pcm;rate=24000`.
    """
    params = mime_parameters(mime_type)
    base = base_mime_type(mime_type)
    is_pcm = params.get("codec", "").lower() == "pcm" or base in ("audio/l16", "audio/pcm")
    if not is_pcm:
        return None
    try:
        return int(params.get("rate", "0"))
    except ValueError:
        return 0


async def pcm_to_ogg(pcm: bytes, sample_rate: int, ffmpeg_path: str = "ffmpeg") -> bytes:
    wav = pcm_to_wav(pcm, sample_rate)
    logger.debug("pcm_wrapped_as_wav", pcm_bytes=len(pcm), wav_bytes=len(wav), sample_rate=sample_rate)
    return await wav_to_ogg(wav, ffmpeg_path)
