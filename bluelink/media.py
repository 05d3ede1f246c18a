"""Encode vault media for inline transport.

Images and audio are sent as base64. Audio in an ``m4a`` container is first
decoded with ffmpeg and rewritten as a 16-bit PCM WAV file, which every
audio-capable chat endpoint accepts.
"""

from __future__ import annotations

import array
import asyncio
import base64
import json
import logging
import os
import shutil
import struct
import sys
import tempfile
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from bluelink.exceptions import MediaDecodeError

logger = logging.getLogger(__name__)

# Multiple of 3 so chunk encodings concatenate without inner padding
ENCODE_CHUNK_SIZE = 3 * 32 * 1024

MIME_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "webp": "image/webp",
    "mp3": "audio/mp3",
    "wav": "audio/wav",
}

_WAV_HEADER_SIZE = 44


@dataclass
class DecodedAudio:
    """Planar float PCM: one sample sequence per channel, nominally in [-1, 1]."""

    sample_rate: int
    channels: list[Sequence[float]]

    @property
    def frame_count(self) -> int:
        return min((len(samples) for samples in self.channels), default=0)


def mime_for_extension(extension: str) -> str:
    """MIME type for a media extension.

    Raises:
        ValueError: For extensions that are not inlined media.
    """
    try:
        return MIME_TYPES[extension.lower()]
    except KeyError:
        raise ValueError(f"No inline MIME type for extension '{extension}'") from None


def encode_base64(data: bytes, chunk_size: int = ENCODE_CHUNK_SIZE) -> str:
    """Base64-encode ``data`` in bounded chunks.

    Args:
        data: Bytes to encode.
        chunk_size: Bytes per chunk; must be a positive multiple of 3.

    Returns:
        Standard base64 text, identical to encoding ``data`` in one go.
    """
    if chunk_size <= 0 or chunk_size % 3:
        raise ValueError(f"chunk_size must be a positive multiple of 3, got {chunk_size}")
    view = memoryview(data)
    return "".join(
        base64.b64encode(view[offset : offset + chunk_size]).decode("ascii")
        for offset in range(0, len(view), chunk_size)
    )


def encode_data_url(data: bytes, mime: str) -> str:
    """Encode bytes as a ``data:<mime>;base64,...`` URL."""
    return f"data:{mime};base64,{encode_base64(data)}"


def _to_int16(sample: float) -> int:
    sample = max(-1.0, min(1.0, sample))
    # int() truncates toward zero
    return int(sample * 0x8000) if sample < 0 else int(sample * 0x7FFF)


def pcm_to_wav(audio: DecodedAudio) -> bytes:
    """Write planar float PCM as a 16-bit little-endian interleaved WAV file.

    Samples are clamped to [-1, 1] before scaling, negatives by 0x8000 and
    positives by 0x7FFF. The output is a single fixed 44-byte RIFF header
    followed by the data chunk.
    """
    channel_count = len(audio.channels)
    if channel_count == 0:
        raise MediaDecodeError("Audio has no channels")
    frames = audio.frame_count
    data_size = frames * channel_count * 2
    block_align = channel_count * 2

    header = struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        _WAV_HEADER_SIZE + data_size - 8,
        b"WAVE",
        b"fmt ",
        16,  # fmt chunk size
        1,  # PCM
        channel_count,
        audio.sample_rate,
        audio.sample_rate * block_align,
        block_align,
        16,  # bits per sample
        b"data",
        data_size,
    )

    samples = array.array("h", (_to_int16(channel[frame]) for frame in range(frames) for channel in audio.channels))
    if sys.byteorder != "little":
        samples.byteswap()
    return header + samples.tobytes()


def _ffmpeg_path() -> str | None:
    configured = (os.getenv("FFMPEG_PATH") or "").strip()
    if configured:
        return configured
    return shutil.which("ffmpeg")


def _ffprobe_path() -> str | None:
    configured = (os.getenv("FFPROBE_PATH") or "").strip()
    if configured:
        return configured
    return shutil.which("ffprobe")


async def _run(cmd: list[str]) -> bytes:
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise MediaDecodeError(f"Could not start {cmd[0]}: {e}") from e
    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        detail = stderr.decode("utf-8", errors="replace").strip().splitlines()
        raise MediaDecodeError(f"{os.path.basename(cmd[0])} failed: {detail[-1] if detail else process.returncode}")
    return stdout


async def decode_audio(data: bytes, suffix: str = ".m4a") -> DecodedAudio:
    """Decode any ffmpeg-readable audio container to planar float PCM.

    The bytes go through a temp file: MP4 containers often keep their index at
    the end, which ffmpeg cannot reach on a pipe.

    Raises:
        MediaDecodeError: If ffmpeg/ffprobe are unavailable or decoding fails.
    """
    ffmpeg = _ffmpeg_path()
    ffprobe = _ffprobe_path()
    if ffmpeg is None or ffprobe is None:
        raise MediaDecodeError("ffmpeg and ffprobe are required to decode m4a audio")

    fd, temp_name = tempfile.mkstemp(suffix=suffix)
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        probe_output = await _run(
            [
                ffprobe,
                "-v",
                "error",
                "-select_streams",
                "a:0",
                "-show_entries",
                "stream=sample_rate,channels",
                "-of",
                "json",
                str(temp_path),
            ]
        )
        raw = await _run(
            [ffmpeg, "-nostdin", "-v", "error", "-i", str(temp_path), "-f", "f32le", "-acodec", "pcm_f32le", "pipe:1"]
        )
    finally:
        temp_path.unlink(missing_ok=True)

    try:
        streams = json.loads(probe_output).get("streams") or []
        sample_rate = int(streams[0]["sample_rate"])
        channel_count = int(streams[0]["channels"])
    except (ValueError, KeyError, IndexError, TypeError) as e:
        raise MediaDecodeError("No decodable audio stream found") from e
    if channel_count <= 0:
        raise MediaDecodeError("Audio has no channels")

    interleaved = array.array("f")
    interleaved.frombytes(raw[: len(raw) - len(raw) % 4])
    if sys.byteorder != "little":
        interleaved.byteswap()

    channels = [interleaved[index::channel_count] for index in range(channel_count)]
    logger.debug(f"Decoded audio: {channel_count} channel(s) at {sample_rate} Hz")
    return DecodedAudio(sample_rate=sample_rate, channels=channels)


async def m4a_to_wav(data: bytes) -> bytes:
    """Transcode m4a bytes to a self-contained WAV file."""
    return pcm_to_wav(await decode_audio(data))
