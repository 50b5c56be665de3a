"""Log-mel feature extraction, offline and streaming."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from parakeet.audio_io import AudioData

# Slaney mel scale: linear below 1000 Hz, logarithmic above.
MEL_BREAK_FREQ = 1000.0
MEL_BREAK_MEL = 15.0
MEL_LINEAR_SCALE = 200.0 / 3.0
MEL_LOG_STEP = 0.06875177742094912  # ln(6.4) / 27

PREEMPHASIS = 0.97
LOG_GUARD = 5.96046448e-8  # 2 ** -24
NORM_EPS = 1e-5


@dataclass
class AudioConfig:
    """Parameters of the log-mel front end."""

    sample_rate: int = 16000
    n_fft: int = 512
    hop_length: int = 160
    win_length: int = 400
    n_mels: int = 80
    f_min: float = 0.0
    f_max: float = 0.0  # 0 or less means sample_rate / 2
    normalize: bool = True

    @property
    def effective_f_max(self) -> float:
        return float(self.f_max) if self.f_max > 0 else self.sample_rate / 2.0


def hz_to_mel_slaney(freq: float) -> float:
    """Convert a frequency in Hz to the Slaney mel scale."""
    if freq < MEL_BREAK_FREQ:
        return freq / MEL_LINEAR_SCALE
    return MEL_BREAK_MEL + float(np.log(freq / MEL_BREAK_FREQ)) / MEL_LOG_STEP


def mel_to_hz_slaney(mel: float) -> float:
    """Convert a Slaney mel value back to Hz."""
    if mel < MEL_BREAK_MEL:
        return mel * MEL_LINEAR_SCALE
    return MEL_BREAK_FREQ * float(np.exp((mel - MEL_BREAK_MEL) * MEL_LOG_STEP))


def build_mel_filterbank(
    n_freqs: int, n_mels: int, sample_rate: float, f_min: float, f_max: float
) -> np.ndarray:
    """Triangular mel filters with Slaney area normalisation, shape (n_freqs, n_mels)."""
    if n_freqs < 2 or n_mels < 1:
        raise ValueError("need at least two frequency bins and one mel band")
    mel_min = hz_to_mel_slaney(f_min)
    mel_max = hz_to_mel_slaney(f_max)
    mel_pts = mel_min + np.arange(n_mels + 2, dtype=np.float64) * (mel_max - mel_min) / (n_mels + 1)
    hz_pts = np.array([mel_to_hz_slaney(m) for m in mel_pts])
    fft_freqs = np.arange(n_freqs, dtype=np.float64) * sample_rate / (2.0 * (n_freqs - 1))

    left = hz_pts[:-2][None, :]
    center = hz_pts[1:-1][None, :]
    right = hz_pts[2:][None, :]
    freq = fft_freqs[:, None]

    with np.errstate(divide="ignore", invalid="ignore"):
        rising = (freq >= left) & (freq <= center) & (center > left)
        falling = ~rising & (freq > center) & (freq <= right) & (right > center)
        up = (freq - left) / (center - left)
        down = (right - freq) / (right - center)
        values = np.where(rising, up, np.where(falling, down, 0.0))
        enorm = 2.0 / (right - left)
        fb = values * enorm
    return np.nan_to_num(fb, nan=0.0).astype(np.float32)


def _padded_window(config: AudioConfig) -> np.ndarray:
    if config.win_length > config.n_fft:
        raise ValueError("win_length must not exceed n_fft")
    window = np.zeros(config.n_fft, dtype=np.float64)
    left = (config.n_fft - config.win_length) // 2
    window[left : left + config.win_length] = np.hanning(config.win_length)
    return window


def _log_mel(frames: np.ndarray, window: np.ndarray, fb: np.ndarray) -> np.ndarray:
    """Windowed frames (n_frames, n_fft) -> log mel (n_frames, n_mels)."""
    spectrum = np.fft.rfft(frames * window, axis=-1)
    power = np.abs(spectrum) ** 2
    mel = power @ fb.astype(np.float64)
    return np.log(mel + LOG_GUARD)


def _filterbank_for(config: AudioConfig) -> np.ndarray:
    return build_mel_filterbank(
        config.n_fft // 2 + 1,
        config.n_mels,
        config.sample_rate,
        config.f_min,
        config.effective_f_max,
    )


def preprocess_audio(waveform, config: AudioConfig | None = None) -> np.ndarray:
    """Turn a mono waveform into features of shape (1, n_frames, n_mels)."""
    config = config or AudioConfig()
    x = np.asarray(waveform, dtype=np.float32).reshape(-1)
    if x.size == 0:
        raise ValueError("waveform is empty")

    pre = np.empty_like(x)
    pre[0] = x[0]
    pre[1:] = x[1:] - np.float32(PREEMPHASIS) * x[:-1]

    pad = config.n_fft // 2
    padded = np.pad(pre.astype(np.float64), pad, mode="reflect")
    frames = sliding_window_view(padded, config.n_fft)[:: config.hop_length]
    log_mel = _log_mel(frames, _padded_window(config), _filterbank_for(config))

    if config.normalize:
        n_frames = log_mel.shape[0]
        centered = log_mel - log_mel.mean(axis=0, keepdims=True)
        with np.errstate(divide="ignore", invalid="ignore"):
            var = (centered * centered).sum(axis=0, keepdims=True) / (n_frames - 1)
            features = centered / (np.sqrt(var) + NORM_EPS)
    else:
        features = log_mel
    return features[None].astype(np.float32)


def preprocess_audio_data(audio: AudioData, config: AudioConfig | None = None) -> np.ndarray:
    """Features for loaded audio, checking that its rate matches the config."""
    config = config or AudioConfig()
    if audio.sample_rate != config.sample_rate:
        raise ValueError(
            f"Sample rate mismatch: audio={audio.sample_rate} expected={config.sample_rate}"
        )
    return preprocess_audio(audio.samples, config)


class StreamingAudioPreprocessor:
    """Incremental log-mel extraction over successive chunks of samples.

    Frames are not centred and features are not normalised.
    """

    def __init__(self, config: AudioConfig | None = None) -> None:
        self.config = config or AudioConfig()
        self._filterbank = _filterbank_for(self.config)
        self._window = np.hanning(self.config.win_length)
        if self.config.win_length > self.config.n_fft:
            raise ValueError("win_length must not exceed n_fft")
        self.reset()

    def reset(self) -> None:
        """Forget all buffered audio and filter state."""
        self._last_sample = np.float32(0.0)
        self._overlap = np.zeros(0, dtype=np.float32)

    def process_chunk(self, samples) -> np.ndarray | None:
        """Add samples; return features (1, n_frames, n_mels) or None if no frame is complete."""
        cfg = self.config
        s = np.asarray(samples, dtype=np.float32).reshape(-1)
        if s.size:
            previous = np.concatenate(([self._last_sample], s[:-1])).astype(np.float32)
            pre = s - np.float32(PREEMPHASIS) * previous
            self._last_sample = s[-1]
        else:
            pre = s

        buffer = np.concatenate((self._overlap, pre))
        if len(buffer) < cfg.win_length:
            self._overlap = buffer
            return None
        n_frames = (len(buffer) - cfg.win_length) // cfg.hop_length + 1
        consumed = (n_frames - 1) * cfg.hop_length + cfg.win_length
        self._overlap = buffer[consumed:].copy()

        windows = sliding_window_view(buffer[:consumed].astype(np.float64), cfg.win_length)
        windows = windows[:: cfg.hop_length][:n_frames] * self._window
        frames = np.zeros((n_frames, cfg.n_fft), dtype=np.float64)
        left = (cfg.n_fft - cfg.win_length) // 2
        frames[:, left : left + cfg.win_length] = windows
        log_mel = _log_mel(frames, np.ones(cfg.n_fft), self._filterbank)
        return log_mel[None].astype(np.float32)