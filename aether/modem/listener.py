"""AetherShare v1 — FSK demodulator.

The listener pulls one hop of audio per analysis frame, keeps the last FFT_N
samples, and for every frame

  * always reports the byte spectrum (for visualisation), then
  * reports a bit if either carrier band passes the noise gate.

It emits one decision per analysis frame, not per transmitted bit; there is
no preamble alignment at this level.  :mod:`aether.modem.sync` slices the
timed decisions back into bits when that is wanted.
"""

import asyncio
import logging
from typing import Callable, NamedTuple, Optional

import numpy as np
from numpy.typing import NDArray

from ..profiles import CAPTURE_PEAK, ModemConfig
from .dsp import BitDecision, SpectrumAnalyser, decide_bit

log = logging.getLogger(__name__)

SpectrumCallback = Callable[[NDArray[np.uint8]], None]
BitCallback      = Callable[[int, int], None]      # (bit, energy)


class TimedDecision(NamedTuple):
    time:     float       # seconds, centre of the analysis window
    decision: BitDecision

    @property
    def bit(self) -> int:
        return self.decision.bit

    @property
    def energy(self) -> int:
        return self.decision.energy


class _FrameClock:
    """Rolling FFT_N buffer plus the time of each frame it produces."""

    def __init__(self, config: ModemConfig):
        self.config   = config
        self.buffer   = np.zeros(config.fft_n, dtype=np.float32)
        self.consumed = 0
        self.analyser = SpectrumAnalyser(config)

    def push(self, block: NDArray) -> tuple[float, NDArray[np.uint8]]:
        n = len(block)
        if n >= len(self.buffer):
            self.buffer[:] = block[-len(self.buffer):]
        else:
            self.buffer = np.roll(self.buffer, -n)
            self.buffer[-n:] = block
        self.consumed += n
        t = (self.consumed - self.config.fft_n / 2) / self.config.sample_rate
        return t, self.analyser.frame(self.buffer)


# ── live ──────────────────────────────────────────────────────────────────────

class AcousticListener:
    """Drives a source at the analysis frame rate on the running event loop."""

    def __init__(self, source, config: ModemConfig | None = None):
        self.source    = source
        self.config    = config or ModemConfig()
        self.decisions: list[TimedDecision] = []
        self.frames    = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def listening(self) -> bool:
        return self._task is not None and not self._task.done()

    def start_listening(
        self,
        on_spectrum_frame: Optional[SpectrumCallback] = None,
        on_bit_decided: Optional[BitCallback] = None,
    ) -> asyncio.Task:
        if self.listening:
            raise RuntimeError("already listening")
        self._task = asyncio.get_running_loop().create_task(
            self._run(on_spectrum_frame, on_bit_decided))
        log.info("listening (%.0f/%.0f Hz, gate %d)",
                 self.config.space_hz, self.config.mark_hz, self.config.noise_gate)
        return self._task

    def stop_listening(self) -> None:
        """Release the audio input now; the loop ends at its next read."""
        self.source.close()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        log.info("stopped listening after %d frames", self.frames)

    async def wait(self) -> list[TimedDecision]:
        """Wait for the source to run dry (or for stop_listening)."""
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                if not self.source.closed:
                    raise
        return self.decisions

    async def _run(self, on_spectrum_frame, on_bit_decided) -> None:
        clock = _FrameClock(self.config)
        hop   = self.config.hop
        try:
            while True:
                block = await self.source.read(hop)
                if block is None or len(block) == 0:
                    break
                t, spectrum = clock.push(block)
                self.frames += 1

                if on_spectrum_frame is not None:
                    on_spectrum_frame(spectrum)

                decision = decide_bit(spectrum, self.config)
                if decision is None:
                    continue
                self.decisions.append(TimedDecision(t, decision))
                if on_bit_decided is not None:
                    on_bit_decided(decision.bit, decision.energy)
        finally:
            self.source.close()


# ── offline ───────────────────────────────────────────────────────────────────

def demodulate(
    samples: NDArray,
    config: ModemConfig | None = None,
    normalize: bool = True,
) -> list[TimedDecision]:
    """Run the live decision loop over a recording in one go.

    With *normalize* the recording is scaled so its peak sits at CAPTURE_PEAK,
    roughly what a microphone picks up from a phone speaker; a full-scale
    render would saturate both carrier bands of the byte spectrum.
    """
    config  = config or ModemConfig()
    samples = np.asarray(samples, dtype=np.float32)
    if normalize:
        peak = float(np.max(np.abs(samples))) if len(samples) else 0.0
        if peak > 0:
            samples = samples * (CAPTURE_PEAK / peak)

    clock = _FrameClock(config)
    hop   = config.hop
    out: list[TimedDecision] = []
    for lo in range(0, len(samples) - hop + 1, hop):
        t, spectrum = clock.push(samples[lo:lo + hop])
        decision = decide_bit(spectrum, config)
        if decision is not None:
            out.append(TimedDecision(t, decision))
    return out
