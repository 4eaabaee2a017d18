from __future__ import annotations

import math

import numpy as np
import pytest

from rainsynth.config import EngineConfig
from rainsynth.droplets import (
    DROPLET_GAIN,
    DropletSequencer,
    acceptance_probability,
    apply_droplets,
    draw_droplets,
    droplet_envelope,
)
from rainsynth.errors import InvalidConfigError


def _config(**overrides: object) -> EngineConfig:
    payload: dict[str, object] = {
        "duration": 1.0,
        "sample_rate": 8000,
        "rain_intensity": 0.1,
        "background_intensity": 0.35,
        "min_drop_freq": 3500,
        "max_drop_freq": 4000,
        "max_oscillations_per_drop": 5,
    }
    payload.update(overrides)
    return EngineConfig.model_validate(payload)


class TestDrawDroplets:
    def test_draws_respect_configured_ranges(self) -> None:
        config = _config()
        batch = draw_droplets(np.random.default_rng(0), config, 5000)
        assert len(batch) == 5000
        assert batch.frequency.min() >= 3500
        assert batch.frequency.max() < 4000
        assert np.allclose(batch.samples_per_oscillation, 8000 / batch.frequency)
        oscillations = batch.total_duration / batch.samples_per_oscillation
        assert np.allclose(oscillations, np.round(oscillations))
        assert np.round(oscillations).min() >= 1
        assert np.round(oscillations).max() <= 4
        assert batch.amplitude.min() >= 0.0
        assert batch.amplitude.max() < 1.0 / config.combined_amplitude

    def test_single_frequency_range(self) -> None:
        config = _config(min_drop_freq=4000, max_drop_freq=4000)
        batch = draw_droplets(np.random.default_rng(1), config, 100)
        assert np.all(batch.frequency == 4000)

    def test_full_intensity_sounds_every_droplet(self) -> None:
        batch = draw_droplets(np.random.default_rng(2), _config(rain_intensity=1.0), 1000)
        assert batch.accepted.all()

    def test_acceptance_rate_tracks_intensity(self) -> None:
        batch = draw_droplets(np.random.default_rng(3), _config(rain_intensity=0.3), 20_000)
        assert batch.accepted.mean() == pytest.approx(0.3, abs=0.02)

    def test_lengths(self) -> None:
        batch = draw_droplets(np.random.default_rng(4), _config(), 2000)
        expected = np.where(batch.accepted, np.floor(batch.total_duration) + 1, 1)
        assert np.array_equal(batch.lengths, expected.astype(np.int64))

    def test_count_must_be_positive(self) -> None:
        with pytest.raises(InvalidConfigError):
            draw_droplets(np.random.default_rng(0), _config(), 0)


class TestAcceptanceProbability:
    def test_intensity_model_reduces_to_intensity(self) -> None:
        config = _config(rain_intensity=0.25)
        probability = acceptance_probability(config, np.array([2.0, 4.5, 9.1]))
        assert np.allclose(probability, 0.25)

    def test_legacy_model_uses_sample_rate(self) -> None:
        config = _config(rain_intensity=0.5, acceptance="legacy")
        probability = acceptance_probability(config, np.array([2.0, 4.5]))
        assert np.allclose(probability, 1.0 / (8000 * 0.5))


class TestEnvelope:
    def test_integral_duration_is_zero_at_both_ends(self) -> None:
        envelope = droplet_envelope(4.0)
        assert np.allclose(envelope, [0.0, 0.1875, 0.25, 0.1875, 0.0])
        assert envelope[0] == 0.0
        assert envelope[-1] == 0.0

    @pytest.mark.parametrize("total", [4.0, 7.3, 11.0, 2.5])
    def test_matches_parabolic_closed_form(self, total: float) -> None:
        envelope = droplet_envelope(total)
        t = np.arange(math.floor(total) + 1) / total
        assert envelope.size == math.floor(total) + 1
        assert np.allclose(envelope, t * (1 - t))
        assert envelope[0] == 0.0

    @pytest.mark.parametrize("total", [4.0, 7.3, 11.0])
    def test_peak_is_strictly_inside(self, total: float) -> None:
        envelope = droplet_envelope(total)
        peak = int(np.argmax(envelope))
        assert 0 < peak < envelope.size - 1
        assert envelope[peak] <= 0.25

    def test_timeline_envelope_follows_each_sounding_droplet(self) -> None:
        timeline = DropletSequencer(_config(rain_intensity=0.6), np.random.default_rng(21)).advance(
            3000
        )
        envelope = timeline.envelope
        starts = np.flatnonzero(timeline.armed)
        sounding = 0
        for begin, end in zip(starts[:-1], starts[1:]):
            if not timeline.accepted[begin]:
                assert envelope[begin] == 1.0
                continue
            sounding += 1
            expected = droplet_envelope(float(timeline.total_duration[begin]))
            assert np.array_equal(envelope[begin:end], expected)
        assert sounding > 0

    def test_rejects_non_positive_duration(self) -> None:
        with pytest.raises(InvalidConfigError):
            droplet_envelope(0.0)


class TestDropletSequencer:
    def test_timeline_covers_requested_samples(self) -> None:
        sequencer = DropletSequencer(_config(), np.random.default_rng(0), batch_size=64)
        timeline = sequencer.advance(1000)
        assert len(timeline) == 1000
        assert timeline.start == 0
        assert sequencer.position == 1000
        assert sequencer.advance(10).start == 1000

    def test_droplets_are_laid_end_to_end(self) -> None:
        sequencer = DropletSequencer(_config(rain_intensity=0.5), np.random.default_rng(7))
        timeline = sequencer.advance(4000)
        starts = np.flatnonzero(timeline.armed)
        assert starts[0] == 0
        for begin, end in zip(starts[:-1], starts[1:]):
            if timeline.accepted[begin]:
                assert end - begin == math.floor(timeline.total_duration[begin]) + 1
            else:
                assert end - begin == 1
            assert np.array_equal(timeline.elapsed[begin:end], np.arange(end - begin))
            assert np.all(timeline.frequency[begin:end] == timeline.frequency[begin])

    def test_split_advance_matches_single_advance(self) -> None:
        config = _config(rain_intensity=0.7)
        whole = DropletSequencer(config, np.random.default_rng(9), batch_size=32).advance(3000)
        split = DropletSequencer(config, np.random.default_rng(9), batch_size=32)
        parts = [split.advance(n) for n in (1, 299, 1200, 1500)]
        for field in ("frequency", "total_duration", "amplitude", "accepted", "elapsed"):
            joined = np.concatenate([getattr(part, field) for part in parts])
            assert np.array_equal(joined, getattr(whole, field)), field

    def test_in_flight_droplet_is_carried(self) -> None:
        sequencer = DropletSequencer(_config(rain_intensity=1.0), np.random.default_rng(3))
        timeline = sequencer.advance(1)
        carried = sequencer.in_flight
        assert carried is not None
        assert carried.active
        assert carried.elapsed == 1
        assert carried.remaining == carried.length - 1
        assert carried.frequency == timeline.frequency[0]
        nxt = sequencer.advance(carried.remaining)
        assert nxt.elapsed[0] == 1
        assert sequencer.in_flight is None

    def test_counts_armed_and_sounded(self) -> None:
        sequencer = DropletSequencer(_config(rain_intensity=0.5), np.random.default_rng(4))
        timelines = [sequencer.advance(700) for _ in range(3)]
        starts = sum(int(np.count_nonzero(t.armed)) for t in timelines)
        sounded = sum(int(np.count_nonzero(t.armed & t.accepted)) for t in timelines)
        assert sequencer.armed == starts
        assert sequencer.sounded == sounded
        assert 0 < sequencer.sounded < sequencer.armed

    def test_advance_requires_positive_count(self) -> None:
        with pytest.raises(InvalidConfigError):
            DropletSequencer(_config(), np.random.default_rng(0)).advance(0)


def test_apply_droplets_shapes_tone_and_layer() -> None:
    config = _config(rain_intensity=0.5)
    timeline = DropletSequencer(config, np.random.default_rng(12)).advance(2000)
    layer = np.full(2000, 0.1)
    out = apply_droplets(timeline, layer, config.sample_rate)

    index = np.arange(2000)
    tone = timeline.amplitude * np.sin(2 * np.pi * timeline.frequency / 8000 * index) * DROPLET_GAIN
    t = timeline.elapsed / timeline.total_duration
    expected = np.where(timeline.accepted, (layer + tone) * t * (1 - t), layer)
    assert np.allclose(out, expected)
    assert np.all(out[timeline.armed & timeline.accepted] == 0.0)
    assert np.all(out[~timeline.accepted] == 0.1)


def test_apply_droplets_rejects_mismatched_layer() -> None:
    timeline = DropletSequencer(_config(), np.random.default_rng(0)).advance(10)
    with pytest.raises(InvalidConfigError):
        apply_droplets(timeline, np.zeros(9), 8000)
