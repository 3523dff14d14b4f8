"""AetherShare v1 — bit-boundary recovery from per-frame decisions.

The demodulator produces several decisions per transmitted bit, with no idea
where one bit ends and the next begins.  The slicer restores the boundaries:

  1. Coarse lock: the first mark decision.  The preamble starts on a mark,
     and the analyser window sees a tone a little before or after it starts.
  2. Fine lock: try start times from LOCK_EARLY_S before to LOCK_LATE_S after
     the coarse lock in LOCK_STEP_S steps.  Each candidate is scored by how
     well the preamble fits: the mark-minus-space margins in the centre of
     each expected preamble bit, signed by the expected bit.  The candidate
     in the middle of the best-scoring plateau wins.
  3. Sampling: each bit is the sign of the summed margin over the central
     half of its window.  A window with no decisions at all is silence.
  4. Bits are read in groups of eight after the preamble.  Reading stops at
     silence or at a zero byte (the trailer is four zero bits followed by
     silence, so either can come first).

No error correction: a mis-sliced bit simply corrupts its character.
"""

import logging
from bisect import bisect_left
from typing import Iterable, Iterator, Optional, Sequence

import numpy as np

from ..profiles import PREAMBLE, ModemConfig
from .fsk import bits_to_text
from .listener import TimedDecision

log = logging.getLogger(__name__)

LOCK_EARLY_S = 0.010
LOCK_LATE_S  = 0.030
LOCK_STEP_S  = 0.0025
PLATEAU      = 0.9     # candidates scoring within this fraction of the best


class BitSlicer:
    def __init__(self, decisions: Iterable[TimedDecision], config: ModemConfig | None = None):
        self.config    = config or ModemConfig()
        self.decisions = sorted(decisions, key=lambda d: d.time)
        self._times    = [d.time for d in self.decisions]
        self._margins  = np.array([d.decision.margin for d in self.decisions], dtype=np.int64)
        self.start: Optional[float] = None

    # ── sampling ──────────────────────────────────────────────────────────────

    def _window_margin(self, t0: float, index: int) -> Optional[int]:
        """Summed margin over the central half of bit *index*, None if silent."""
        bd = self.config.bit_duration
        lo = bisect_left(self._times, t0 + (index + 0.25) * bd)
        hi = bisect_left(self._times, t0 + (index + 0.75) * bd)
        if lo >= hi:
            return None
        return int(self._margins[lo:hi].sum())

    def sample(self, t0: float, index: int) -> Optional[str]:
        margin = self._window_margin(t0, index)
        if margin is None:
            return None
        return "1" if margin > 0 else "0"

    # ── lock ──────────────────────────────────────────────────────────────────

    def _score(self, t0: float) -> int:
        score = 0
        for i, expected in enumerate(PREAMBLE):
            margin = self._window_margin(t0, i)
            if margin is None:
                continue
            score += margin if expected == "1" else -margin
        return score

    def lock(self) -> Optional[float]:
        """Find the start of the preamble.  None if there is no valid preamble."""
        coarse = next((d.time for d in self.decisions if d.bit == 1), None)
        if coarse is None:
            return None

        offsets = np.arange(-LOCK_EARLY_S, LOCK_LATE_S + LOCK_STEP_S / 2, LOCK_STEP_S)
        scores  = [self._score(coarse + off) for off in offsets]
        best    = max(scores)
        if best <= 0:
            return None
        plateau = [off for off, s in zip(offsets, scores) if s >= PLATEAU * best]
        t0      = coarse + float(plateau[len(plateau) // 2])

        preamble = "".join(self.sample(t0, i) or "-" for i in range(len(PREAMBLE)))
        if preamble != PREAMBLE:
            log.debug("preamble mismatch at %.3f s: %s", t0, preamble)
            return None

        self.start = t0
        log.debug("locked at %.3f s (coarse %.3f s)", t0, coarse)
        return t0

    # ── payload ───────────────────────────────────────────────────────────────

    def bytes_after_preamble(self) -> Iterator[str]:
        """Yield 8-bit groups after the preamble until silence or a zero byte."""
        if self.start is None and self.lock() is None:
            return
        index = len(PREAMBLE)
        while True:
            group = [self.sample(self.start, index + k) for k in range(8)]
            if None in group:
                return
            bits = "".join(group)
            if bits == "00000000":
                return
            yield bits
            index += 8

    def text(self) -> Optional[str]:
        if self.start is None and self.lock() is None:
            return None
        return bits_to_text("".join(self.bytes_after_preamble()))


def recover_text(decisions: Sequence[TimedDecision], config: ModemConfig | None = None) -> Optional[str]:
    """Text carried by a decision stream, or None if no preamble was found."""
    return BitSlicer(decisions, config).text()


def raw_bits(decisions: Iterable[TimedDecision]) -> str:
    """The unaligned per-frame bit stream, exactly as the listener decided it."""
    return "".join(str(d.bit) for d in decisions)
