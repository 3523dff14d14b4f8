"""Acoustic path: two-tone FSK announcement of a short string."""

from .dsp import BitDecision, SpectrumAnalyser, band_energy, byte_spectrum, decide_bit
from .fsk import Transmission, bits_to_text, frame_bits, modulate, text_to_bits, transmit
from .listener import AcousticListener, TimedDecision, demodulate
from .sync import BitSlicer, raw_bits, recover_text

__all__ = [
    "BitDecision", "SpectrumAnalyser", "band_energy", "byte_spectrum", "decide_bit",
    "Transmission", "bits_to_text", "frame_bits", "modulate", "text_to_bits", "transmit",
    "AcousticListener", "TimedDecision", "demodulate",
    "BitSlicer", "raw_bits", "recover_text",
]
