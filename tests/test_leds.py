import json

import numpy as np
import pytest

from vibesrgb.errors import BinCoverageError, ConfigError
from vibesrgb.leds import (OFF, RED, LedConfig, check_coverage, find_bin, load_led_config,
                           paint, parse_led_config, save_led_config, target_freq)
from vibesrgb.spectrum import (Bin, BinRange, Linear, Logarithmic, Ranges, bin_spectrum,
                               compute_spectrum)


def make_bins(*pairs):
    return [Bin(BinRange(s, e), m) for (s, e), m in pairs]


class TestParse:
    def test_object_form(self):
        config = parse_led_config({
            'aspect_ratio': 1.5,
            'leds': [None, {'x': 0.25, 'y': 0.75}, {'x': 1, 'y': 0}],
        })
        assert config.aspect_ratio == 1.5
        assert config.leds == (None, (0.25, 0.75), (1.0, 0.0))
        assert config.placed == [1, 2]
        assert len(config) == 3

    def test_configurator_pair_form(self):
        config = parse_led_config([2.0, [{'x': 0.5, 'y': 0.5}, None]])
        assert config.aspect_ratio == 2.0
        assert config.leds == ((0.5, 0.5), None)

    def test_list_positions(self):
        assert parse_led_config({'leds': [[0.1, 0.2]]}).leds == ((0.1, 0.2),)

    @pytest.mark.parametrize('bad', [
        {'aspect_ratio': 1.0},
        {'leds': 'nope'},
        {'leds': [{'x': 0.5}]},
        {'leds': [{'x': 1.5, 'y': 0.5}]},
        {'leds': [{'x': -0.1, 'y': 0.5}]},
        {'leds': [{'x': 'left', 'y': 0.5}]},
        {'leds': [{'x': True, 'y': 0.5}]},
        {'leds': [[0.1, 0.2, 0.3]]},
        {'aspect_ratio': 'wide', 'leds': []},
        [1.0, 2.0, 3.0],
        42,
    ])
    def test_malformed(self, bad):
        with pytest.raises(ConfigError):
            parse_led_config(bad)


class TestFiles:
    def test_round_trip_through_disk(self, tmp_path):
        path = tmp_path / 'kbd.json'
        original = LedConfig(1.25, (None, (0.1, 0.9)))
        save_led_config(original, path)
        assert load_led_config(path) == original

    def test_reads_configurator_output(self, tmp_path):
        path = tmp_path / 'kbd.json'
        path.write_text(json.dumps([1.7777, [None, {'x': 0.3, 'y': 0.4}]]))
        config = load_led_config(path)
        assert config.leds[1] == (0.3, 0.4)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_led_config(tmp_path / 'nothing.json')

    def test_not_json(self, tmp_path):
        path = tmp_path / 'bad.json'
        path.write_text('{leds: ')
        with pytest.raises(ConfigError):
            load_led_config(path)

    def test_unplaced_factory(self):
        config = LedConfig.unplaced(4)
        assert config.leds == (None, None, None, None)
        assert config.placed == []


class TestTargetFreq:
    def test_scales_x(self):
        assert target_freq(0.0, 500.0) == 0
        assert target_freq(0.5, 500.0) == 250
        assert target_freq(0.333, 500.0) == 166

    def test_right_edge_stays_in_range(self):
        assert target_freq(1.0, 500.0) == 499
        assert target_freq(1.0, 22050.0) == 22049

    def test_right_edge_with_fractional_max_freq(self):
        # 44101 Hz capture: the last Linear range ends at 22050
        max_freq = 22050.5
        last = Linear(10).ranges(max_freq)[-1]
        assert target_freq(1.0, max_freq) == 22049
        assert last.contains(target_freq(1.0, max_freq))


class TestPaint:
    def test_threshold(self):
        config = LedConfig(1.0, ((0.1, 0.0), (0.9, 0.0)))
        bins = make_bins(((0, 250), 1.5), ((250, 500), 1.0))
        assert paint(config, bins, 500.0) == [RED, OFF]

    def test_custom_threshold_and_color(self):
        config = LedConfig(1.0, ((0.1, 0.0), (0.9, 0.0)))
        bins = make_bins(((0, 250), 3.0), ((250, 500), 6.0))
        frame = paint(config, bins, 500.0, threshold=5.0, color=(0, 0, 255))
        assert frame == [OFF, (0, 0, 255)]

    def test_unplaced_always_off(self):
        config = LedConfig.unplaced(6)
        bins = make_bins(((0, 500), 1e9))
        assert paint(config, bins, 500.0) == [OFF] * 6

    def test_first_matching_bin_wins(self):
        config = LedConfig(1.0, ((0.2, 0.0),))
        bins = make_bins(((0, 200), 0.0), ((50, 150), 9.0))
        assert paint(config, bins, 500.0, strict=False) == [OFF]
        assert find_bin(bins, 100).magnitude == 0.0

    def test_frame_length_matches_config(self):
        config = LedConfig(1.0, (None, (0.5, 0.5), None, (0.0, 0.1)))
        frame = paint(config, make_bins(((0, 500), 2.0)), 500.0)
        assert len(frame) == len(config)
        assert frame == [OFF, RED, OFF, RED]

    def test_miss_is_an_error_when_strict(self):
        config = LedConfig(1.0, ((0.9, 0.0),))
        bins = make_bins(((0, 100), 5.0))
        with pytest.raises(BinCoverageError) as exc:
            paint(config, bins, 500.0)
        assert exc.value.led_index == 0
        assert exc.value.freq == 450

    def test_miss_paints_off_when_lenient(self):
        config = LedConfig(1.0, ((0.9, 0.0), (0.1, 0.0)))
        bins = make_bins(((0, 100), 5.0))
        assert paint(config, bins, 500.0, strict=False) == [OFF, RED]

    def test_silence_is_all_off(self):
        sr = 1000
        config = LedConfig(1.0, tuple((i / 9, 0.5) for i in range(10)))
        spectrum = compute_spectrum(np.zeros(100, dtype=np.float32))
        bins = bin_spectrum(spectrum, sr, Linear(4))
        assert paint(config, bins, sr / 2) == [OFF] * 10

    def test_sine_lights_left_half(self, make_sine):
        sr = 1000
        config = LedConfig(1.0, ((0.1, 0.5), (0.4, 0.5), (0.6, 0.5), (0.99, 0.5)))
        spectrum = compute_spectrum(make_sine(100, sr, 100))
        bins = bin_spectrum(spectrum, sr, Linear(2))
        assert paint(config, bins, sr / 2) == [RED, RED, OFF, OFF]


class TestCoverage:
    def test_linear_covers_everything(self):
        config = LedConfig(1.0, tuple((i / 10, 0.0) for i in range(11)))
        assert check_coverage(config, Linear(7).ranges(22050.0), 22050.0) == []

    def test_custom_gaps_are_reported(self):
        config = LedConfig(1.0, ((0.1, 0.0), None, (0.9, 0.0)))
        ranges = Ranges(((0, 100),)).ranges(500.0)
        assert check_coverage(config, ranges, 500.0) == [2]

    def test_log_starts_at_one_hertz(self):
        config = LedConfig(1.0, ((0.0, 0.0), (0.5, 0.0)))
        assert check_coverage(config, Logarithmic(2).ranges(22050.0), 22050.0) == [0]
