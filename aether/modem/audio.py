"""Audio sources and sinks for the acoustic modem.

Sources expose ``async read(n) -> ndarray | None`` (None once exhausted) and a
synchronous ``close()``.  Sinks expose ``play(pcm, sample_rate)`` and
``stop()``.

Live devices need the optional ``sounddevice`` package
(``pip install aethershare[audio]``); files and arrays only need soundfile.
"""

import asyncio
import logging
from math import gcd
from pathlib import Path

import numpy as np
import scipy.io.wavfile as _wavfile
import scipy.signal as spsig
import soundfile as sf
from numpy.typing import NDArray

from ..profiles import SR

log = logging.getLogger(__name__)


# ── file I/O ──────────────────────────────────────────────────────────────────

def read_audio(path: str | Path, sample_rate: int = SR) -> NDArray[np.float32]:
    """Load any soundfile-readable file as float32 mono at *sample_rate*."""
    data, rate = sf.read(str(path), dtype="float32", always_2d=False)
    if data.ndim == 2:
        data = data.mean(axis=1)  # stereo → mono
    if rate != sample_rate:
        g    = gcd(int(rate), int(sample_rate))
        data = spsig.resample_poly(data, sample_rate // g, int(rate) // g).astype(np.float32)
    return data


def write_wav(path: str | Path, samples: NDArray, sample_rate: int = SR) -> None:
    """16-bit PCM mono WAV."""
    pcm = np.clip(samples, -1.0, 1.0)
    _wavfile.write(str(path), sample_rate, (pcm * 32767).astype(np.int16))


# ── sources ───────────────────────────────────────────────────────────────────

class ArraySource:
    """Feeds a recording to a listener as if it were arriving live.

    With ``realtime=True`` each read sleeps for the duration of the block it
    returns; otherwise it only yields to the loop.
    """

    def __init__(self, samples: NDArray, sample_rate: int = SR, realtime: bool = False):
        self.samples     = np.asarray(samples, dtype=np.float32)
        self.sample_rate = sample_rate
        self.realtime    = realtime
        self.position    = 0
        self.closed      = False

    @classmethod
    def from_file(cls, path: str | Path, sample_rate: int = SR, realtime: bool = False) -> "ArraySource":
        return cls(read_audio(path, sample_rate), sample_rate, realtime)

    async def read(self, n: int) -> NDArray[np.float32] | None:
        if self.closed or self.position >= len(self.samples):
            return None
        block = self.samples[self.position:self.position + n]
        self.position += len(block)
        await asyncio.sleep(len(block) / self.sample_rate if self.realtime else 0)
        return block

    def close(self) -> None:
        self.closed = True


class MicrophoneSource:
    """Default input device via a non-blocking sounddevice stream."""

    POLL_S = 0.002

    def __init__(self, sample_rate: int = SR, device=None):
        import sounddevice as sd

        self.sample_rate = sample_rate
        self.stream = sd.InputStream(samplerate=sample_rate, channels=1,
                                     dtype="float32", device=device)
        self.stream.start()
        log.info("microphone open at %d Hz", sample_rate)

    @property
    def closed(self) -> bool:
        return self.stream.closed

    async def read(self, n: int) -> NDArray[np.float32] | None:
        while not self.stream.closed and self.stream.read_available < n:
            await asyncio.sleep(self.POLL_S)
        if self.stream.closed:
            return None
        data, overflowed = self.stream.read(n)
        if overflowed:
            log.debug("microphone input overflow")
        return data[:, 0].copy()

    def close(self) -> None:
        if not self.stream.closed:
            self.stream.stop()
            self.stream.close()
            log.info("microphone released")


# ── sinks ─────────────────────────────────────────────────────────────────────

class SpeakerSink:
    """Default output device.  ``play`` returns immediately."""

    def __init__(self, device=None):
        import sounddevice as sd

        self._sd    = sd
        self.device = device

    def play(self, pcm: NDArray, sample_rate: int = SR) -> None:
        self._sd.play(pcm, sample_rate, device=self.device)

    def stop(self) -> None:
        self._sd.stop()


class WavSink:
    """Writes whatever is played to a WAV file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def play(self, pcm: NDArray, sample_rate: int = SR) -> None:
        write_wav(self.path, pcm, sample_rate)
        log.info("wrote %s (%.2f s)", self.path, len(pcm) / sample_rate)

    def stop(self) -> None:
        pass
