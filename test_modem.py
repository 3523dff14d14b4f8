#!/usr/bin/env python3
"""
test_modem.py — FSK modulator, analyser and bit slicer.

Tests:
  1. Frame bits ("A" → 10101010 01000001 0000) and schedule
  2. Rendered waveform length / continuity
  3. Bit decision on synthetic spectra
  4. Analyser on pure tones
  5. Rendered filename → decisions → text
  6. Live listener over an array source
"""
from __future__ import annotations
import asyncio, os, sys
sys.path.insert(0, os.path.dirname(__file__))

import numpy as np
import pytest

from aether.modem import (
    AcousticListener,
    SpectrumAnalyser,
    band_energy,
    bits_to_text,
    decide_bit,
    demodulate,
    frame_bits,
    modulate,
    raw_bits,
    recover_text,
    text_to_bits,
)
from aether.modem.audio import ArraySource, read_audio, write_wav
from aether.profiles import ModemConfig

CFG = ModemConfig()


# ─────────────────────────────────────────────────────────────────────────────
# 1. Bits and schedule
# ─────────────────────────────────────────────────────────────────────────────

def test_frame_bits_for_A():
    assert frame_bits("A") == "10101010" + "01000001" + "0000"


def test_text_bits_roundtrip_latin1():
    assert bits_to_text(text_to_bits("naïve.txt")) == "naïve.txt"


def test_wide_characters_rejected():
    with pytest.raises(ValueError):
        text_to_bits("日本")


def test_schedule_after_lead_in():
    tx = modulate("A")
    assert len(tx.schedule) == 20
    assert tx.schedule[0].start == pytest.approx(0.1)
    assert tx.schedule[1].start == pytest.approx(0.15)
    assert [s.frequency for s in tx.schedule[:2]] == [2000.0, 1200.0]
    assert tx.duration == pytest.approx(0.1 + 20 / 20.0)


# ─────────────────────────────────────────────────────────────────────────────
# 2. Render
# ─────────────────────────────────────────────────────────────────────────────

def test_render_length_and_level():
    tx  = modulate("A")
    pcm = tx.render()
    assert pcm.dtype == np.float32
    assert len(pcm) == int(round((0.1 + 1.0 + 0.5) * CFG.sample_rate))
    lead = int(0.1 * CFG.sample_rate)
    assert not pcm[:lead].any()
    assert np.max(np.abs(pcm)) == pytest.approx(0.5, abs=5e-3)
    # phase-continuous: no sample-to-sample jump bigger than the steepest tone allows
    step = 2 * np.pi * CFG.mark_hz / CFG.sample_rate * 0.5
    assert np.max(np.abs(np.diff(pcm))) <= step * 1.05


def test_wait_resolves_after_duration_and_tail():
    cfg = ModemConfig(baud=1000.0, lead_in_s=0.0, tail_s=0.01)
    tx  = modulate("A", cfg)

    async def run():
        loop = asyncio.get_running_loop()
        t0 = loop.time()
        await tx.wait()
        return loop.time() - t0

    assert asyncio.run(run()) >= 0.02 + 0.01 - 1e-3


# ─────────────────────────────────────────────────────────────────────────────
# 3. Decisions
# ─────────────────────────────────────────────────────────────────────────────

def _spectrum(mark: int, space: int) -> np.ndarray:
    spec = np.zeros(CFG.fft_n // 2, dtype=np.uint8)
    spec[int(round(CFG.mark_hz / CFG.hz_per_bin)) + 1] = mark     # off-centre: drift tolerated
    spec[int(round(CFG.space_hz / CFG.hz_per_bin))]    = space
    return spec


def test_mark_heavy_spectrum_is_one():
    d = decide_bit(_spectrum(200, 20), CFG)
    assert d.bit == 1 and d.energy == 200


def test_space_heavy_spectrum_is_zero():
    d = decide_bit(_spectrum(10, 180), CFG)
    assert d.bit == 0 and d.energy == 180


def test_below_noise_gate_is_no_decision():
    assert decide_bit(_spectrum(50, 49), CFG) is None


def test_tie_goes_to_zero():
    assert decide_bit(_spectrum(120, 120), CFG).bit == 0


def test_band_energy_ignores_far_bins():
    spec = np.zeros(CFG.fft_n // 2, dtype=np.uint8)
    spec[int(round(CFG.mark_hz / CFG.hz_per_bin)) + 5] = 255
    assert band_energy(spec, CFG.mark_hz, CFG) == 0


# ─────────────────────────────────────────────────────────────────────────────
# 4. Analyser
# ─────────────────────────────────────────────────────────────────────────────

def _tone(freq: float, amp: float = 0.05, n: int = 4096) -> np.ndarray:
    t = np.arange(n) / CFG.sample_rate
    return (amp * np.sin(2 * np.pi * freq * t)).astype(np.float32)


def test_analyser_sees_mark_tone():
    analyser = SpectrumAnalyser(CFG)
    for _ in range(4):              # let smoothing settle
        spec = analyser.frame(_tone(CFG.mark_hz))
    d = decide_bit(spec, CFG)
    assert d is not None and d.bit == 1
    assert d.mark > 150 and d.space < 50


def test_analyser_silence_is_zero():
    spec = SpectrumAnalyser(CFG).frame(np.zeros(CFG.fft_n))
    assert not spec.any()
    assert decide_bit(spec, CFG) is None


# ─────────────────────────────────────────────────────────────────────────────
# 5. Offline recovery
# ─────────────────────────────────────────────────────────────────────────────

def test_rendered_filename_recovered():
    pcm = modulate("a.txt").render()
    decisions = demodulate(pcm)
    assert decisions
    assert set(raw_bits(decisions)) == {"0", "1"}
    assert recover_text(decisions) == "a.txt"


def test_recovery_survives_wav_file(tmp_path):
    path = tmp_path / "chirp.wav"
    write_wav(path, modulate("hi").render())
    assert recover_text(demodulate(read_audio(path))) == "hi"


def test_silence_has_no_preamble():
    assert recover_text(demodulate(np.zeros(CFG.sample_rate))) is None


# ─────────────────────────────────────────────────────────────────────────────
# 6. Live listener
# ─────────────────────────────────────────────────────────────────────────────

def test_listener_reports_every_frame():
    pcm = modulate("ok").render() * 0.1
    frames, bits = [], []

    async def run():
        listener = AcousticListener(ArraySource(pcm), CFG)
        listener.start_listening(frames.append, lambda bit, energy: bits.append(bit))
        return await listener.wait(), listener

    decisions, listener = asyncio.run(run())
    assert len(frames) == listener.frames == int(np.ceil(len(pcm) / CFG.hop))
    assert len(bits) == len(decisions) < len(frames)
    assert recover_text(decisions) == "ok"


def test_stop_listening_releases_source():
    source = ArraySource(np.zeros(CFG.sample_rate * 5), realtime=True)

    async def run():
        listener = AcousticListener(source, CFG)
        listener.start_listening()
        await asyncio.sleep(0.05)
        listener.stop_listening()
        assert source.closed
        await listener.wait()
        return listener

    listener = asyncio.run(run())
    assert not listener.listening
