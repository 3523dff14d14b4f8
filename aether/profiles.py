"""AetherShare v1 — all compile-time constants, keyed in one place.

Nothing here is computed at runtime except the derived values at the bottom
of each section.  Change a value here and it propagates everywhere.

The two frozen dataclasses at the end bundle the run-time tunables of the
peer transport and the acoustic modem; their defaults come from the
constants above.
"""

import os
from dataclasses import dataclass
from types import MappingProxyType

# ── PBKDF2 KDF ────────────────────────────────────────────────────────────────
# LOCKED for v1: sender and receiver must agree or every decrypt fails.
PBKDF2_HASH       = "sha256"
PBKDF2_ITERATIONS = 100_000
KEY_LEN           = 32       # bytes → AES-256 key

# ── AEAD ──────────────────────────────────────────────────────────────────────
SALT_LEN  = 16
NONCE_LEN = 12   # GCM IV
TAG_LEN   = 16   # GCM tag appended to the ciphertext

# ── compression ───────────────────────────────────────────────────────────────
ZSTD_LEVEL            = 3
GZIP_MAGIC            = b"\x1f\x8b"               # browser-era links
ZSTD_MAGIC            = b"\x28\xb5\x2f\xfd"
DEFAULT_IMAGE_QUALITY = 0.7
IMAGE_FORMAT          = "WEBP"
IMAGE_MIME            = "image/webp"

# ── locator wire format ───────────────────────────────────────────────────────
DELIMITER     = "|"
SCHEME_INLINE = "AETHER"
SCHEME_SECURE = "SECURE"
SCHEME_BEAM   = "BEAM"

# Characters JavaScript's encodeURIComponent leaves untouched.
URI_SAFE = "-_.!~*'()"

# ── peer transport ────────────────────────────────────────────────────────────
CHUNK_SIZE    = 16 * 1024        # stays under typical per-message peer limits
YIELD_EVERY   = 50               # chunks between cooperative drains
YIELD_DELAY_S = 0.010
MAX_FRAME_LEN = 4 * 1024 * 1024  # refuse absurd length prefixes on the wire

# ── acoustic modem ────────────────────────────────────────────────────────────
MARK_HZ   = 2000.0   # bit 1
SPACE_HZ  = 1200.0   # bit 0
BAUD      = 20.0     # bits per second
PREAMBLE  = "10101010"
TRAILER   = "0000"
LEAD_IN_S = 0.1      # silence before the first tone
TAIL_S    = 0.5      # completion is signalled this long after the last tone

TONE_AMPLITUDE = 0.5
FADE_S         = 0.005

SR          = 44_100
FFT_N       = 2048           # bin width = SR / FFT_N ≈ 21.5 Hz
FRAME_RATE  = 60.0           # analysis frames per second
BAND_RANGE  = 2              # ± bins scanned around mark / space
NOISE_GATE  = 50             # byte-spectrum level a band must exceed
SMOOTHING   = 0.5            # analyser time smoothing (0 = none)
MIN_DB      = -100.0         # byte spectrum: 0   ↔ MIN_DB
MAX_DB      = -30.0          # byte spectrum: 255 ↔ MAX_DB
CAPTURE_PEAK = 0.05          # offline demodulation normalises recordings to this peak

# ── themes ────────────────────────────────────────────────────────────────────
# Opaque to the pipeline; the receiver UI looks the key up.  Built once, read-only.
VIBES = MappingProxyType({
    "default":   MappingProxyType({"name": "Default",     "class": ""}),
    "cyberpunk": MappingProxyType({"name": "Cyberpunk",   "class": "vibe-cyberpunk"}),
    "sunset":    MappingProxyType({"name": "Sunset",      "class": "vibe-sunset"}),
    "matrix":    MappingProxyType({"name": "The Matrix",  "class": "vibe-matrix"}),
    "zen":       MappingProxyType({"name": "Zen Garden",  "class": "vibe-zen"}),
})
DEFAULT_VIBE = "default"

DEFAULT_GEO_RADIUS_M = 5000.0

# ── environment ───────────────────────────────────────────────────────────────
DEBUG_ENV = "AETHER_DEBUG"


def debug_enabled() -> bool:
    return os.environ.get(DEBUG_ENV, "").strip() not in ("", "0", "false", "no")


# ── run-time tunables ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TransportConfig:
    chunk_size:    int   = CHUNK_SIZE
    yield_every:   int   = YIELD_EVERY
    yield_delay_s: float = YIELD_DELAY_S

    def __post_init__(self):
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.yield_every <= 0:
            raise ValueError(f"yield_every must be positive, got {self.yield_every}")


@dataclass(frozen=True)
class ModemConfig:
    mark_hz:     float = MARK_HZ
    space_hz:    float = SPACE_HZ
    baud:        float = BAUD
    sample_rate: int   = SR
    fft_n:       int   = FFT_N
    frame_rate:  float = FRAME_RATE
    band_range:  int   = BAND_RANGE
    noise_gate:  int   = NOISE_GATE
    smoothing:   float = SMOOTHING
    amplitude:   float = TONE_AMPLITUDE
    lead_in_s:   float = LEAD_IN_S
    tail_s:      float = TAIL_S

    @property
    def bit_duration(self) -> float:
        return 1.0 / self.baud

    @property
    def hz_per_bin(self) -> float:
        return self.sample_rate / self.fft_n

    @property
    def hop(self) -> int:
        """Samples between successive analysis frames."""
        return max(1, int(round(self.sample_rate / self.frame_rate)))
