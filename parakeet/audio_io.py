"""Audio loading: format detection, WAV decoding, downmixing and resampling."""

from __future__ import annotations

import enum
import math
import os
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence, Union

import numpy as np

DEFAULT_SAMPLE_RATE = 16000

PathLike = Union[str, "os.PathLike[str]"]

_HALF_WIDTH = 16
_KAISER_BETA = 7.857  # roughly 80 dB stopband
_RESAMPLE_BLOCK = 16384


class AudioFormat(enum.Enum):
    """Container/codec of an audio stream."""

    UNKNOWN = "unknown"
    WAV = "wav"
    FLAC = "flac"
    MP3 = "mp3"
    OGG = "ogg"


class AudioDecodeError(RuntimeError):
    """Raised when audio cannot be opened, recognised or decoded."""


@dataclass
class AudioData:
    """Mono float32 samples together with information about their origin."""

    samples: np.ndarray
    sample_rate: int
    original_sample_rate: int
    original_channels: int
    num_samples: int
    duration: float
    format: AudioFormat = AudioFormat.UNKNOWN


_EXTENSIONS = {
    "wav": AudioFormat.WAV,
    "wave": AudioFormat.WAV,
    "flac": AudioFormat.FLAC,
    "mp3": AudioFormat.MP3,
    "ogg": AudioFormat.OGG,
    "oga": AudioFormat.OGG,
    "ogv": AudioFormat.OGG,
}


# ─── Format detection ────────────────────────────────────────────────────────


def detect_format_by_extension(path: PathLike) -> AudioFormat:
    """Guess the format from the text after the last dot of ``path``."""
    text = os.fspath(path)
    dot = text.rfind(".")
    if dot < 0:
        return AudioFormat.UNKNOWN
    return _EXTENSIONS.get(text[dot + 1 :].lower(), AudioFormat.UNKNOWN)


def detect_format_by_magic(data: bytes) -> AudioFormat:
    """Recognise a format from the leading bytes of a stream."""
    head = bytes(data[:12])
    if len(head) < 2:
        return AudioFormat.UNKNOWN
    if head[0] == 0xFF and (head[1] & 0xE0) == 0xE0:
        return AudioFormat.MP3
    if head.startswith(b"ID3"):
        return AudioFormat.MP3
    if len(head) < 4:
        return AudioFormat.UNKNOWN
    if len(head) >= 12 and head[:4] == b"RIFF" and head[8:12] == b"WAVE":
        return AudioFormat.WAV
    if head[:4] == b"fLaC":
        return AudioFormat.FLAC
    if head[:4] == b"OggS":
        return AudioFormat.OGG
    return AudioFormat.UNKNOWN


# ─── Resampling and downmixing ───────────────────────────────────────────────


def _sinc_resample(x: np.ndarray, src_rate: int, dst_rate: int) -> np.ndarray:
    g = math.gcd(src_rate, dst_rate)
    up = dst_rate // g
    down = src_rate // g
    n_in = len(x)
    out_len = (n_in * up + down - 1) // down
    out = np.zeros(out_len, dtype=np.float32)
    if out_len == 0 or n_in == 0:
        return out

    ratio = src_rate / dst_rate
    cutoff = min(1.0, 1.0 / max(ratio, 1.0))
    sample_ratio = dst_rate / src_rate
    width_factor = max(1.0, ratio)
    offsets = np.arange(-_HALF_WIDTH + 1, _HALF_WIDTH + 1, dtype=np.int64)
    i0_beta = float(np.i0(_KAISER_BETA))
    signal = x.astype(np.float64)

    for start in range(0, out_len, _RESAMPLE_BLOCK):
        stop = min(start + _RESAMPLE_BLOCK, out_len)
        src_pos = np.arange(start, stop, dtype=np.float64) / sample_ratio
        center = np.floor(src_pos).astype(np.int64)
        taps = center[:, None] + offsets
        valid = (taps >= 0) & (taps < n_in)

        dist = src_pos[:, None] - taps
        window_pos = dist / width_factor
        valid &= np.abs(window_pos) <= _HALF_WIDTH

        arg = 2.0 * (window_pos + _HALF_WIDTH) / (2.0 * _HALF_WIDTH) - 1.0
        inside = np.clip(1.0 - arg * arg, 0.0, None)
        window = np.i0(_KAISER_BETA * np.sqrt(inside)) / i0_beta

        phase = dist * cutoff * math.pi
        tiny = np.abs(phase) < 1e-10
        sinc = np.where(tiny, 1.0, np.sin(phase) / np.where(tiny, 1.0, phase))

        weight = np.where(valid, sinc * window * cutoff, 0.0)
        values = signal[np.clip(taps, 0, n_in - 1)]
        acc = (values * weight).sum(axis=1)
        weight_sum = weight.sum(axis=1)
        usable = weight_sum > 1e-10
        out[start:stop] = np.where(usable, acc / np.where(usable, weight_sum, 1.0), 0.0)
    return out


def resample(samples, src_rate: int, dst_rate: int) -> np.ndarray:
    """Resample a 1-D signal with a Kaiser-windowed sinc filter."""
    x = np.asarray(samples, dtype=np.float32).reshape(-1)
    if src_rate == dst_rate:
        return x
    if src_rate <= 0 or dst_rate <= 0:
        raise ValueError("sample rates must be positive")
    return _sinc_resample(x, src_rate, dst_rate)


def downmix_to_mono(interleaved, channels: int) -> np.ndarray:
    """Average interleaved multi-channel samples into one channel."""
    if channels < 1:
        raise ValueError(f"channel count must be positive, got {channels}")
    data = np.asarray(interleaved, dtype=np.float32).reshape(-1)
    if channels == 1:
        return data.copy()
    frames = len(data) // channels
    grouped = data[: frames * channels].reshape(frames, channels)
    return grouped.sum(axis=1, dtype=np.float32) * np.float32(1.0 / channels)


def _make_audio_data(
    mono: np.ndarray,
    src_rate: int,
    target_rate: int,
    channels: int,
    fmt: AudioFormat,
) -> AudioData:
    if src_rate <= 0:
        raise AudioDecodeError(f"Invalid sample rate: {src_rate}")
    if target_rate <= 0:
        raise ValueError(f"target sample rate must be positive, got {target_rate}")
    final = resample(mono, src_rate, target_rate) if src_rate != target_rate else mono
    final = np.ascontiguousarray(final, dtype=np.float32)
    return AudioData(
        samples=final,
        sample_rate=target_rate,
        original_sample_rate=src_rate,
        original_channels=channels,
        num_samples=len(final),
        duration=len(mono) / src_rate,
        format=fmt,
    )


# ─── WAV ─────────────────────────────────────────────────────────────────────


class _WavError(Exception):
    pass


@dataclass
class _WavStream:
    format_tag: int
    channels: int
    sample_rate: int
    sample_bytes: int
    payload: bytes

    @property
    def frame_bytes(self) -> int:
        return self.channels * self.sample_bytes

    @property
    def frame_count(self) -> int:
        return len(self.payload) // self.frame_bytes


def _parse_wav(data: bytes) -> _WavStream:
    if len(data) < 12 or data[:4] != b"RIFF" or data[8:12] != b"WAVE":
        raise _WavError("not a RIFF/WAVE stream")
    fmt_chunk = None
    payload = None
    pos = 12
    while pos + 8 <= len(data):
        chunk_id = data[pos : pos + 4]
        (size,) = struct.unpack_from("<I", data, pos + 4)
        body = data[pos + 8 : pos + 8 + size]
        if chunk_id == b"fmt ":
            fmt_chunk = body
        elif chunk_id == b"data":
            payload = body
            if fmt_chunk is not None:
                break
        pos += 8 + size + (size & 1)

    if fmt_chunk is None or len(fmt_chunk) < 16 or payload is None:
        raise _WavError("missing fmt or data chunk")
    tag, channels, rate, _byte_rate, block_align, bits = struct.unpack_from("<HHIIHH", fmt_chunk)
    if tag == 0xFFFE and len(fmt_chunk) >= 26:
        (tag,) = struct.unpack_from("<H", fmt_chunk, 24)
    if channels == 0 or rate == 0:
        raise _WavError("invalid channel count or sample rate")
    sample_bytes = block_align // channels if block_align >= channels else (bits + 7) // 8
    if sample_bytes == 0:
        raise _WavError("invalid sample size")
    return _WavStream(tag, channels, rate, sample_bytes, payload)


def _mulaw_to_float(raw: np.ndarray) -> np.ndarray:
    u = (~raw.astype(np.int32)) & 0xFF
    exponent = (u >> 4) & 0x07
    mantissa = u & 0x0F
    magnitude = (((mantissa << 3) + 0x84) << exponent) - 0x84
    return np.where(u & 0x80, -magnitude, magnitude).astype(np.float32) / 32768.0


def _alaw_to_float(raw: np.ndarray) -> np.ndarray:
    a = raw.astype(np.int32) ^ 0x55
    segment = (a & 0x70) >> 4
    base = (a & 0x0F) << 4
    magnitude = np.where(
        segment == 0,
        base + 8,
        (base + 0x108) << np.maximum(segment - 1, 0),
    )
    return np.where(a & 0x80, magnitude, -magnitude).astype(np.float32) / 32768.0


def _wav_samples(stream: _WavStream) -> np.ndarray:
    usable = stream.frame_count * stream.frame_bytes
    raw = stream.payload[:usable]
    tag, width = stream.format_tag, stream.sample_bytes
    if tag == 1:
        if width == 1:
            return (np.frombuffer(raw, dtype=np.uint8).astype(np.float32) - 128.0) / 128.0
        if width == 2:
            return np.frombuffer(raw, dtype="<i2").astype(np.float32) / 32768.0
        if width == 3:
            b = np.frombuffer(raw, dtype=np.uint8).reshape(-1, 3).astype(np.int32)
            value = b[:, 0] | (b[:, 1] << 8) | (b[:, 2] << 16)
            value = (value << 8) >> 8
            return value.astype(np.float32) / 8388608.0
        if width == 4:
            return (np.frombuffer(raw, dtype="<i4").astype(np.float64) / 2147483648.0).astype(
                np.float32
            )
    elif tag == 3:
        if width == 4:
            return np.frombuffer(raw, dtype="<f4").astype(np.float32)
        if width == 8:
            return np.frombuffer(raw, dtype="<f8").astype(np.float32)
    elif tag == 6 and width == 1:
        return _alaw_to_float(np.frombuffer(raw, dtype=np.uint8))
    elif tag == 7 and width == 1:
        return _mulaw_to_float(np.frombuffer(raw, dtype=np.uint8))
    raise _WavError(f"unsupported WAV encoding (format {tag}, {width * 8}-bit)")


def _decode_wav(data: bytes, target_rate: int, open_error: str, decode_error: str) -> AudioData:
    try:
        stream = _parse_wav(data)
        interleaved = _wav_samples(stream)
    except (_WavError, struct.error) as exc:
        raise AudioDecodeError(open_error) from exc
    if stream.frame_count == 0:
        raise AudioDecodeError(decode_error)
    mono = downmix_to_mono(interleaved, stream.channels)
    return _make_audio_data(mono, stream.sample_rate, target_rate, stream.channels, AudioFormat.WAV)


# ─── Loading ─────────────────────────────────────────────────────────────────


def _sniff_file(path: PathLike) -> AudioFormat:
    fmt = detect_format_by_extension(path)
    if fmt is not AudioFormat.UNKNOWN:
        return fmt
    try:
        with open(path, "rb") as fh:
            head = fh.read(12)
    except OSError as exc:
        raise AudioDecodeError(f"Cannot open audio file: {os.fspath(path)}") from exc
    return detect_format_by_magic(head)


def _read_file(path: PathLike, fmt: AudioFormat) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as exc:
        raise AudioDecodeError(f"Cannot open {fmt.name} file: {os.fspath(path)}") from exc


def read_audio(path: PathLike, target_sample_rate: int = DEFAULT_SAMPLE_RATE) -> AudioData:
    """Load an audio file as mono float32 at ``target_sample_rate``."""
    name = os.fspath(path)
    fmt = _sniff_file(path)
    if fmt is AudioFormat.WAV:
        return _decode_wav(
            _read_file(path, fmt),
            target_sample_rate,
            f"Cannot open WAV file: {name}",
            f"Failed to decode WAV: {name}",
        )
    if fmt is AudioFormat.UNKNOWN:
        raise AudioDecodeError(f"Unsupported or unrecognized audio format: {name}")
    raise AudioDecodeError(f"No decoder available for {fmt.name} audio: {name}")


def read_audio_bytes(data: bytes, target_sample_rate: int = DEFAULT_SAMPLE_RATE) -> AudioData:
    """Decode an encoded audio stream held in memory."""
    data = bytes(data)
    fmt = detect_format_by_magic(data)
    if fmt is AudioFormat.WAV:
        return _decode_wav(
            data,
            target_sample_rate,
            "Cannot decode WAV from memory buffer",
            "Failed to decode WAV from memory",
        )
    if fmt is AudioFormat.UNKNOWN:
        raise AudioDecodeError("Unsupported or unrecognized audio format in memory buffer")
    raise AudioDecodeError(f"No decoder available for {fmt.name} audio in memory buffer")


def read_pcm_float32(
    pcm: Sequence[float] | np.ndarray,
    sample_rate: int,
    target_sample_rate: int = DEFAULT_SAMPLE_RATE,
) -> AudioData:
    """Wrap raw mono float32 PCM, resampling if needed."""
    mono = np.array(pcm, dtype=np.float32).reshape(-1)
    return _make_audio_data(mono, sample_rate, target_sample_rate, 1, AudioFormat.UNKNOWN)


def read_pcm_int16(
    pcm: Sequence[int] | np.ndarray,
    sample_rate: int,
    target_sample_rate: int = DEFAULT_SAMPLE_RATE,
) -> AudioData:
    """Wrap raw mono int16 PCM, scaling to [-1, 1) and resampling if needed."""
    ints = np.asarray(pcm, dtype=np.int16).reshape(-1)
    mono = ints.astype(np.float32) / 32768.0
    return _make_audio_data(mono, sample_rate, target_sample_rate, 1, AudioFormat.UNKNOWN)


# ─── Duration query ──────────────────────────────────────────────────────────


def _flac_duration(data: bytes, name: str) -> float:
    if len(data) < 42 or data[:4] != b"fLaC" or (data[4] & 0x7F) != 0:
        raise AudioDecodeError(f"Cannot open FLAC file: {name}")
    (packed,) = struct.unpack_from(">Q", data, 8 + 10)
    rate = packed >> 44
    total = packed & ((1 << 36) - 1)
    if rate == 0:
        raise AudioDecodeError(f"Cannot open FLAC file: {name}")
    return total / rate


def _ogg_duration(data: bytes, name: str) -> float:
    error = AudioDecodeError(f"Cannot open OGG file: {name}")
    if len(data) < 27 or data[:4] != b"OggS":
        raise error
    segments = data[26]
    packet_start = 27 + segments
    packet = data[packet_start : packet_start + 30]
    if len(packet) < 16 or packet[0] != 1 or packet[1:7] != b"vorbis":
        raise error
    (rate,) = struct.unpack_from("<I", packet, 12)
    if rate == 0:
        raise error

    pos = len(data)
    while True:
        pos = data.rfind(b"OggS", 0, pos)
        if pos < 0:
            raise error
        if pos + 14 <= len(data) and data[pos + 4] == 0:
            (granule,) = struct.unpack_from("<q", data, pos + 6)
            if granule >= 0:
                return granule / rate


def get_audio_duration(path: PathLike) -> float:
    """Return the duration of an audio file in seconds, reading headers where possible."""
    name = os.fspath(path)
    fmt = _sniff_file(path)
    if fmt is AudioFormat.WAV:
        data = _read_file(path, fmt)
        try:
            stream = _parse_wav(data)
        except (_WavError, struct.error) as exc:
            raise AudioDecodeError(f"Cannot open WAV file: {name}") from exc
        return stream.frame_count / stream.sample_rate
    if fmt is AudioFormat.FLAC:
        return _flac_duration(_read_file(path, fmt), name)
    if fmt is AudioFormat.OGG:
        return _ogg_duration(_read_file(path, fmt), name)
    if fmt is AudioFormat.MP3:
        return read_audio(path).duration
    raise AudioDecodeError(f"Unsupported or unrecognized audio format: {name}")