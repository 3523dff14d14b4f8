"""AetherShare v1 — spectrum analysis and per-frame bit decision.

Byte spectrum
-------------
The receiver works on the same 8-bit magnitude spectrum a browser analyser
node produces, so decisions made here and in the web client agree:

  1. Blackman window over the most recent FFT_N samples
  2. |rfft| / FFT_N, first FFT_N / 2 bins
  3. exponential time smoothing with constant SMOOTHING
  4. 20·log10, mapped linearly from [MIN_DB, MAX_DB] onto 0..255, clipped

Decision
--------
Band energy is the maximum byte value within ±BAND_RANGE bins of the carrier
(tolerates a few Hz of drift on cheap speakers).  If either band exceeds
NOISE_GATE the louder band wins; a tie goes to 0.
"""

from typing import NamedTuple, Optional

import numpy as np
from numpy.typing import NDArray

from ..profiles import MAX_DB, MIN_DB, ModemConfig


class BitDecision(NamedTuple):
    bit:    int
    energy: int      # level of the winning band
    mark:   int
    space:  int

    @property
    def margin(self) -> int:
        return self.mark - self.space


# ── analyser ──────────────────────────────────────────────────────────────────

class SpectrumAnalyser:
    """Stateful byte-spectrum analyser; one instance per audio stream."""

    def __init__(self, config: ModemConfig | None = None):
        self.config  = config or ModemConfig()
        n            = self.config.fft_n
        self._window = np.blackman(n)
        self._scale  = 255.0 / (MAX_DB - MIN_DB)
        self._prev   = np.zeros(n // 2)

    def reset(self) -> None:
        self._prev[:] = 0.0

    def frame(self, samples: NDArray) -> NDArray[np.uint8]:
        """Analyse the last FFT_N samples of *samples* (left-padded with zeros)."""
        n = self.config.fft_n
        block = np.asarray(samples, dtype=np.float64)[-n:]
        if len(block) < n:
            block = np.concatenate([np.zeros(n - len(block)), block])

        mag = np.abs(np.fft.rfft(block * self._window))[: n // 2] / n
        tau = self.config.smoothing
        self._prev = tau * self._prev + (1.0 - tau) * mag

        db = 20.0 * np.log10(np.maximum(self._prev, 1e-12))
        return np.clip((db - MIN_DB) * self._scale, 0, 255).astype(np.uint8)


def byte_spectrum(samples: NDArray, config: ModemConfig | None = None) -> NDArray[np.uint8]:
    """One-shot byte spectrum of a single window, no smoothing history."""
    return SpectrumAnalyser(config).frame(samples)


# ── decision ──────────────────────────────────────────────────────────────────

def band_energy(spectrum: NDArray, frequency: float, config: ModemConfig | None = None) -> int:
    config = config or ModemConfig()
    centre = int(round(frequency / config.hz_per_bin))
    lo     = max(0, centre - config.band_range)
    hi     = min(len(spectrum), centre + config.band_range + 1)
    if lo >= hi:
        return 0
    return int(np.max(spectrum[lo:hi]))


def decide_bit(spectrum: NDArray, config: ModemConfig | None = None) -> Optional[BitDecision]:
    """Decide one bit from a byte spectrum, or None if both bands are below the gate."""
    config = config or ModemConfig()
    mark   = band_energy(spectrum, config.mark_hz, config)
    space  = band_energy(spectrum, config.space_hz, config)

    if mark <= config.noise_gate and space <= config.noise_gate:
        return None
    if mark > space:
        return BitDecision(1, mark, mark, space)
    return BitDecision(0, space, mark, space)
