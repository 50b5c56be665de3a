"""Speech front end on NumPy: audio loading and resampling, log-mel features and an LSTM."""

__version__ = "0.1.0"

__all__ = ["audio", "audio_io", "lstm"]