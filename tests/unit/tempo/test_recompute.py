"""Tests for the recompute pass: merge order, ordering repair and its hook."""

from __future__ import annotations

import logging

import pytest

from metrum.core.tempo import (
    BBTTime,
    Meter,
    MeterSection,
    PositionLockStyle,
    Tempo,
    TempoMap,
    TempoSection,
    TempoType,
)
from metrum.core.tempo.metrics import Metrics
from metrum.core.tempo.recompute import recompute

FRAME_RATE = 48000
BEAT = 24000  # samples per beat at 120 bpm


@pytest.fixture
def metrics() -> Metrics:
    return Metrics.initial(Tempo(beats_per_minute=120.0), Meter(divisions_per_bar=4.0))


class TestMergeOrder:
    """Music- and audio-locked sections end up in one consistent order."""

    def test_audio_tempo_before_music_tempo(self, metrics):
        music = TempoSection(tempo=Tempo(beats_per_minute=60.0), beat=8.0, sample=0)
        audio = TempoSection(
            tempo=Tempo(beats_per_minute=90.0),
            lock_style=PositionLockStyle.AUDIO_TIME,
            beat=50.0,
            sample=4 * BEAT,
        )
        metrics.insert(music)
        metrics.insert(audio)

        assert recompute(metrics, FRAME_RATE) == 0
        assert metrics.tempos[1:] == [audio, music]
        assert audio.beat == pytest.approx(4.0)
        # 4 beats at 120 bpm, then 4 beats at 90 bpm
        assert music.sample == 4 * BEAT + 4 * 32_000

    def test_music_meter_follows_audio_meter(self, metrics):
        audio = MeterSection(
            meter=Meter(divisions_per_bar=2.0),
            lock_style=PositionLockStyle.AUDIO_TIME,
            sample=100_000,
        )
        music = MeterSection(meter=Meter(divisions_per_bar=3.0), bbt=BBTTime(bars=5))
        metrics.insert(audio)
        metrics.insert(music)

        assert recompute(metrics, FRAME_RATE) == 0
        assert audio.bbt == BBTTime(bars=3)
        # bar 3 of 2/4 starts at the audio meter, two bars of 2 beats later is bar 5
        assert music.beat == pytest.approx(100_000 / BEAT + 4.0)
        assert [m.id for m in metrics.meters[1:]] == [audio.id, music.id]

    def test_ramp_is_shaped_by_the_earlier_successor(self, metrics):
        ramp = TempoSection(
            tempo=Tempo(beats_per_minute=120.0), tempo_type=TempoType.RAMP, beat=4.0
        )
        audio = TempoSection(
            tempo=Tempo(beats_per_minute=60.0),
            lock_style=PositionLockStyle.AUDIO_TIME,
            sample=20 * BEAT,
        )
        music = TempoSection(tempo=Tempo(beats_per_minute=240.0), beat=100.0)
        for section in (ramp, audio, music):
            metrics.insert(section)

        recompute(metrics, FRAME_RATE)

        assert metrics.next_tempo(ramp) is audio
        end_bpm = audio.tempo.beats_per_minute
        assert ramp.beat_at_sample(audio.sample, end_bpm, audio.sample, FRAME_RATE) == (
            pytest.approx(audio.beat)
        )
        assert ramp.beat < audio.beat < music.beat
        assert ramp.sample < audio.sample < music.sample

    def test_bounded_pass_leaves_later_sections(self, metrics):
        near = TempoSection(tempo=Tempo(beats_per_minute=60.0), beat=4.0, sample=1)
        far = TempoSection(tempo=Tempo(beats_per_minute=90.0), beat=16.0, sample=900_000)
        metrics.insert(near)
        metrics.insert(far)

        recompute(metrics, FRAME_RATE, end=500_000)

        assert near.sample == 4 * BEAT
        assert far.sample == 900_000
        assert [t.id for t in metrics.tempos[1:]] == [near.id, far.id]


class TestOrderingRepair:
    """Sections that can not be placed in order are clamped and reported."""

    @pytest.fixture
    def clamps(self) -> list[tuple[int, int]]:
        return []

    @pytest.fixture
    def hooked_map(self, clamps):
        def record(section, previous):
            clamps.append((section.id, previous.id))

        tmap = TempoMap(FRAME_RATE, on_clamp=record)
        yield tmap
        tmap.close()

    def test_meter_sharing_a_bar_is_clamped(self, hooked_map, clamps, caplog):
        music = hooked_map.add_meter(Meter(divisions_per_bar=3.0), BBTTime(bars=5))
        assert clamps == []

        # 360000 is beat 15, inside bar 4; the audio meter takes bar 5 from there
        with caplog.at_level(logging.WARNING, logger="metrum.core.tempo.recompute"):
            audio = hooked_map.add_meter(
                Meter(divisions_per_bar=2.0), 360_000, PositionLockStyle.AUDIO_TIME
            )

        assert audio is not None
        assert audio.bbt == BBTTime(bars=5)
        assert clamps == [(music.id, audio.id)]
        assert "clamping" in caplog.text

        clamped = hooked_map.section(music.id)
        assert (clamped.beat, clamped.sample) == (audio.beat, audio.sample)

    def test_recompute_returns_clamp_count(self, metrics):
        audio = MeterSection(
            meter=Meter(divisions_per_bar=2.0),
            lock_style=PositionLockStyle.AUDIO_TIME,
            sample=15 * BEAT,
        )
        music = MeterSection(meter=Meter(divisions_per_bar=3.0), bbt=BBTTime(bars=5))
        metrics.insert(audio)
        metrics.insert(music)
        seen = []

        clamped = recompute(metrics, FRAME_RATE, on_clamp=lambda s, p: seen.append((s, p)))

        assert clamped == 1
        assert seen == [(music, audio)]

    def test_contradictory_tempos_are_clamped_onto_each_other(self, metrics):
        # Ramping 120 -> 30 reaches beat 40 only after sample 960000, while
        # ramping 120 -> 240 passes beat 40 before it: neither order holds.
        ramp = TempoSection(
            tempo=Tempo(beats_per_minute=120.0), tempo_type=TempoType.RAMP, beat=4.0
        )
        music = TempoSection(tempo=Tempo(beats_per_minute=30.0), beat=40.0)
        audio = TempoSection(
            tempo=Tempo(beats_per_minute=240.0),
            lock_style=PositionLockStyle.AUDIO_TIME,
            sample=960_000,
        )
        for section in (ramp, music, audio):
            metrics.insert(section)
        seen = []

        clamped = recompute(metrics, FRAME_RATE, on_clamp=lambda s, p: seen.append((s, p)))

        assert clamped == 1
        assert seen == [(music, audio)]
        assert (music.beat, music.sample) == (audio.beat, audio.sample)
        samples = [s.sample for s in metrics]
        beats = [s.beat for s in metrics]
        assert samples == sorted(samples)
        assert beats == sorted(beats)
