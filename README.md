# parakeet

Front-end building blocks for speech-recognition models, written in pure
Python on top of NumPy: reading audio, mixing it down and resampling it,
turning it into log-mel features, offline or chunk by chunk, and a stacked
LSTM of the kind used in transducer prediction networks.

## Installation

```
pip install .
```

With the test dependencies:

```
pip install ".[test]"
```

## Modules

### `parakeet.audio_io`

- `read_audio(path, target_sample_rate=16000)` loads a file as mono float32
  samples at the target rate and returns an `AudioData` (`samples`,
  `sample_rate`, `original_sample_rate`, `original_channels`, `num_samples`,
  `duration` in seconds of the original audio, `format`).
- `read_audio_bytes(data, target_sample_rate=16000)` does the same for an
  encoded stream held in memory.
- `read_pcm_float32(pcm, sample_rate, target_sample_rate=16000)` and
  `read_pcm_int16(pcm, sample_rate, target_sample_rate=16000)` wrap raw mono
  PCM; int16 values are divided by 32768.
- `resample(samples, src_rate, dst_rate)` resamples a 1-D signal with a
  Kaiser-windowed sinc filter; equal rates return the input unchanged,
  non-positive rates raise `ValueError`.
- `downmix_to_mono(interleaved, channels)` averages interleaved channels.
- `detect_format_by_extension(path)` and `detect_format_by_magic(data)`
  return an `AudioFormat` (`WAV`, `FLAC`, `MP3`, `OGG` or `UNKNOWN`).
  `read_audio` tries the extension first and falls back to the leading bytes.
- `get_audio_duration(path)` reads the duration of WAV, FLAC and Ogg Vorbis
  files from their headers without decoding the samples.

WAV decoding covers PCM at 8, 16, 24 and 32 bits, IEEE float at 32 and 64
bits, A-law and µ-law, including `WAVE_FORMAT_EXTENSIBLE` headers. Problems
with the input raise `AudioDecodeError`.

### `parakeet.audio`

- `AudioConfig` holds the front-end parameters (defaults: 16 kHz, `n_fft`
  512, hop 160, window 400, 80 mel bands, `f_max` of 0 meaning half the
  sample rate, `normalize=True`).
- `preprocess_audio(waveform, config=None)` applies pre-emphasis (0.97), a
  centred STFT with reflect padding and a symmetric Hann window, the power
  spectrum, a Slaney mel filterbank, `log(x + 2**-24)` and, when
  `normalize` is set, per-band normalisation with the unbiased variance. The
  result has shape `(1, n_frames, n_mels)`. An empty waveform raises
  `ValueError`.
- `preprocess_audio_data(audio, config=None)` does the same for an
  `AudioData`, raising `ValueError` if its sample rate differs from the
  config's.
- `StreamingAudioPreprocessor(config=None)` takes chunks through
  `process_chunk(samples)`. It carries the pre-emphasis state and unused
  samples over between calls, and returns features of shape
  `(1, n_frames, n_mels)`, or `None` until a whole window is available.
  Streaming frames are not centred and not normalised. `reset()` clears
  the buffered state.
- `build_mel_filterbank`, `hz_to_mel_slaney` and `mel_to_hz_slaney` expose
  the mel scale and the filterbank of shape `(n_freqs, n_mels)`.

### `parakeet.lstm`

- `LSTMCell(input_size, hidden_size, rng=None)` advances one step with
  `cell(x, (h, c))` and returns the new `(h, c)`. Gates are ordered input,
  forget, cell, output; weights are drawn uniformly in
  `±1/sqrt(hidden_size)` and are plain arrays (`input_weight`,
  `input_bias`, `hidden_weight`) that can be overwritten with trained values.
- `LSTM(input_size, hidden_size, num_layers=1, rng=None)` stacks cells.
  `initial_states(batch)` gives zero states, `step(x, states)` returns
  `(output, new_states)` for one time step, and `forward(x, states=None)`
  runs a `(batch, seq, features)` input and returns
  `((batch, seq, hidden), final_states)`.

## Example

```python
import numpy as np

from parakeet.audio import AudioConfig, StreamingAudioPreprocessor, preprocess_audio
from parakeet.audio_io import read_pcm_float32
from parakeet.lstm import LSTM

t = np.arange(44100) / 44100
audio = read_pcm_float32(np.sin(2 * np.pi * 440 * t), 44100)  # resampled to 16 kHz
features = preprocess_audio(audio.samples, AudioConfig())
print(features.shape)                     # (1, n_frames, 80)

stream = StreamingAudioPreprocessor()
print(stream.process_chunk(np.zeros(100)))          # None: not a full window yet
print(stream.process_chunk(np.zeros(4800)).shape)   # (1, n_frames, 80)

lstm = LSTM(80, 64, num_layers=2, rng=0)
outputs, states = lstm.forward(features)
print(outputs.shape)                      # (1, n_frames, 64)
```

## What the package does not do

- Only WAV streams are decoded. FLAC, MP3 and Ogg Vorbis are recognised, and
  the durations of FLAC and Ogg Vorbis files can be read, but loading their
  samples raises `AudioDecodeError`; so does asking for the duration of an
  MP3 file.
- There is no acoustic model, decoder, tokenizer or speaker diarization, and
  no way to load trained weights from a file: the package stops at features
  and the LSTM layer.
- There is no command-line program.

## Running the tests

```
pytest
```