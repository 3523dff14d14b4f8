"""AetherShare v1 — binary FSK modulator.

Acoustic frame
--------------
  preamble  10101010          fixed, alternating, starts on a mark
  payload   8 bits per char   most-significant bit first, code points ≤ U+00FF
  trailer   0000

Each bit is one tone of ``1 / baud`` seconds: MARK_HZ for 1, SPACE_HZ for 0.
The first tone starts LEAD_IN_S after the transmission begins, and completion
is signalled TAIL_S after the last tone ends.

The rendered waveform keeps phase continuous across bit boundaries (a single
oscillator whose frequency is stepped), so there are no clicks between bits;
only the very start and end are faded.
"""

import asyncio
import logging
from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray

from ..profiles import FADE_S, PREAMBLE, TRAILER, ModemConfig

log = logging.getLogger(__name__)


# ── bits ──────────────────────────────────────────────────────────────────────

def text_to_bits(text: str) -> str:
    """Eight bits per character, MSB first.  Raises ValueError above U+00FF."""
    out = []
    for ch in text:
        code = ord(ch)
        if code > 0xFF:
            raise ValueError(f"character {ch!r} (U+{code:04X}) does not fit in 8 bits")
        out.append(format(code, "08b"))
    return "".join(out)


def frame_bits(text: str) -> str:
    return PREAMBLE + text_to_bits(text) + TRAILER


def bits_to_text(bits: str) -> str:
    """Inverse of :func:`text_to_bits`; a trailing partial byte is ignored."""
    usable = len(bits) - len(bits) % 8
    return "".join(chr(int(bits[i:i + 8], 2)) for i in range(0, usable, 8))


# ── transmission ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ToneSlot:
    frequency: float
    start:     float      # seconds from the start of the transmission


@dataclass
class Transmission:
    """Handle for one modulated string.

    ``schedule`` is what a tone generator needs; :meth:`render` turns it into
    PCM; :meth:`wait` resolves once playback would have finished.
    """

    text:     str
    bits:     str
    schedule: list[ToneSlot]
    config:   ModemConfig = field(default_factory=ModemConfig)

    @property
    def duration(self) -> float:
        """Seconds from the start of the transmission to the end of the last tone."""
        return self.config.lead_in_s + len(self.bits) * self.config.bit_duration

    def render(self, include_tail: bool = True) -> NDArray[np.float32]:
        """Float32 mono PCM at ``config.sample_rate``, lead-in silence included."""
        cfg = self.config
        sr  = cfg.sample_rate
        spb = int(round(cfg.bit_duration * sr))        # samples per bit
        lead = int(round(cfg.lead_in_s * sr))
        tail = int(round(cfg.tail_s * sr)) if include_tail else 0

        freqs = np.repeat([slot.frequency for slot in self.schedule], spb)
        phase = 2.0 * np.pi * np.cumsum(freqs) / sr
        tone  = cfg.amplitude * np.sin(phase)

        fade = min(int(FADE_S * sr), len(tone) // 2)
        if fade:
            ramp = np.linspace(0.0, 1.0, fade)
            tone[:fade]  *= ramp
            tone[-fade:] *= ramp[::-1]

        pcm = np.zeros(lead + len(tone) + tail, dtype=np.float32)
        pcm[lead:lead + len(tone)] = tone
        return pcm

    async def wait(self) -> None:
        await asyncio.sleep(self.duration + self.config.tail_s)


def modulate(text: str, config: ModemConfig | None = None) -> Transmission:
    """Build the bit frame and tone schedule for *text*."""
    config = config or ModemConfig()
    bits   = frame_bits(text)
    bd     = config.bit_duration
    schedule = [
        ToneSlot(config.mark_hz if b == "1" else config.space_hz, config.lead_in_s + i * bd)
        for i, b in enumerate(bits)
    ]
    log.debug("modulate %r → %s", text, bits)
    return Transmission(text=text, bits=bits, schedule=schedule, config=config)


async def transmit(text: str, sink=None, config: ModemConfig | None = None) -> Transmission:
    """Modulate *text*, hand the PCM to *sink* (if any) and await completion.

    *sink* is anything with ``play(pcm, sample_rate)``, e.g.
    :class:`aether.modem.audio.SpeakerSink`.
    """
    tx = modulate(text, config)
    if sink is not None:
        sink.play(tx.render(include_tail=False), tx.config.sample_rate)
    log.info("transmitting %d bits (%.2f s)", len(tx.bits), tx.duration)
    await tx.wait()
    return tx
