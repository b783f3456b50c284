import json

import pytest
import soundfile as sf

from vibesrgb import capture
from vibesrgb.__main__ import main


@pytest.fixture
def tone(tmp_path, make_sine):
    path = tmp_path / 'tone.wav'
    sf.write(str(path), make_sine(440, 8000, 2400, amplitude=0.5), 8000)
    return str(path)


def test_wav_to_terminal(tone, capsys):
    main(['run', '--wav', tone, '--no-leds', '--num-leds', '8', '--binning', 'linear:4'])
    out = capsys.readouterr().out
    assert 'LEDs: 8 (8 placed)' in out
    assert 'Window: 400 samples @ 8000 Hz' in out
    assert "'frames':" in out
    assert 'Done!' in out


def test_wav_with_layout_file(tone, tmp_path, capsys):
    layout = tmp_path / 'leds.json'
    layout.write_text(json.dumps({'aspect_ratio': 1.0, 'leds': [None, {'x': 0.1, 'y': 0.1}]}))
    main(['run', '--wav', tone, '--no-leds', '--num-leds', '2', '--leds-file', str(layout)])
    assert 'LEDs: 2 (1 placed)' in capsys.readouterr().out


def test_bad_layout_exits(tone, tmp_path):
    with pytest.raises(SystemExit) as exc:
        main(['run', '--wav', tone, '--no-leds', '--num-leds', '2',
              '--leds-file', str(tmp_path / 'missing.json')])
    assert exc.value.code == 1


def test_layout_size_mismatch_exits(tone, tmp_path):
    layout = tmp_path / 'leds.json'
    layout.write_text(json.dumps({'leds': [None, None, None]}))
    with pytest.raises(SystemExit) as exc:
        main(['run', '--wav', tone, '--no-leds', '--num-leds', '2', '--leds-file', str(layout)])
    assert exc.value.code == 1


def test_bad_binning_exits(tone):
    with pytest.raises(SystemExit) as exc:
        main(['run', '--wav', tone, '--no-leds', '--num-leds', '2', '--binning', 'log:1'])
    assert exc.value.code == 1


def test_missing_audio_device_exits(monkeypatch):
    class NoInputs:
        def query_devices(self, device=None):
            return [{'name': 'Speakers', 'max_input_channels': 0, 'default_samplerate': 48000.0}]

    monkeypatch.setattr(capture, 'sd', NoInputs())
    with pytest.raises(SystemExit) as exc:
        main(['run', '--no-leds', '--num-leds', '2', '--device', 'stereo mix'])
    assert exc.value.code == 1


def test_devices_without_portaudio_exits(monkeypatch):
    monkeypatch.setattr(capture, 'sd', None)
    with pytest.raises(SystemExit) as exc:
        main(['devices'])
    assert exc.value.code == 1


def test_bad_settings_file_exits(tone, tmp_path):
    config = tmp_path / 'vibes.yaml'
    config.write_text('sink: {timeout: null}\n')
    with pytest.raises(SystemExit) as exc:
        main(['run', '--wav', tone, '--no-leds', '--num-leds', '2', '--config', str(config)])
    assert exc.value.code == 1
