#!/usr/bin/env python3
"""
VibesRGB — audio-reactive lighting for OpenRGB controllers.

Captures a loopback audio device, runs each 50 ms window through an FFT,
groups the spectrum into frequency bins and lights every placed LED whose
bin is loud enough.

Usage:
    # Live audio → OpenRGB controller 0 on localhost
    python -m vibesrgb run --leds-file assets/razerkbd.json

    # Settings file, logarithmic bins
    python -m vibesrgb run --config vibes.yaml --binning log:2

    # WAV file instead of live audio, terminal only (no controller)
    python -m vibesrgb run --wav song.wav --no-leds --num-leds 60

    # Arduino strip over serial
    python -m vibesrgb run --serial /dev/cu.usbserial-11230 --num-leds 197

    # Blink one LED so you can find it on the fixture
    python -m vibesrgb blink 12

    # Write an all-unplaced layout sized to the controller
    python -m vibesrgb init-leds assets/mykbd.json

    # List input devices
    python -m vibesrgb devices

Controls:
    Ctrl+C  - Quit
"""

import argparse
import logging
import sys
import threading
import time

from vibesrgb.capture import LiveCapture, WavPlayback, find_input_device, list_input_devices
from vibesrgb.errors import VibesError
from vibesrgb.leds import OFF, RED, LedConfig, load_led_config, save_led_config
from vibesrgb.pipeline import FrameDelivery, Pipeline, window_length
from vibesrgb.settings import BLINK_PERIOD, load_settings
from vibesrgb.signals import WindowAccumulator
from vibesrgb.sinks import OpenRGBSink, SerialSink, TerminalSink
from vibesrgb.spectrum import binning_from_config, describe, parse_binning

logger = logging.getLogger('vibesrgb')


def open_sink(sink_settings, num_leds=None):
    """Connect the configured sink. Raises SinkError/ConfigError on failure."""
    kind = sink_settings.kind
    if kind == 'openrgb':
        return OpenRGBSink.connect(sink_settings.host, sink_settings.port,
                                   sink_settings.controller)
    count = num_leds or sink_settings.num_leds
    if not count:
        raise VibesError(f"{kind} sink needs an LED count (--num-leds or sink.num_leds)")
    if kind == 'serial':
        return SerialSink(sink_settings.serial_port, count)
    return TerminalSink(count)


def apply_overrides(settings, args):
    if args.leds_file:
        settings.led_config = args.leds_file
    if args.device:
        settings.device = args.device
    if args.window_ms:
        settings.window_ms = args.window_ms
    if args.threshold is not None:
        settings.threshold = args.threshold
    if args.brightness is not None:
        settings.brightness = args.brightness
    if args.host:
        settings.sink.host = args.host
    if args.port:
        settings.sink.port = args.port
    if args.controller is not None:
        settings.sink.controller = args.controller
    if args.num_leds:
        settings.sink.num_leds = args.num_leds
    if args.serial:
        settings.sink.kind = 'serial'
        settings.sink.serial_port = args.serial
    if args.no_leds:
        settings.sink.kind = 'terminal'
    return settings.validate()


def cmd_run(args):
    settings = apply_overrides(load_settings(args.config), args)
    binning = parse_binning(args.binning) if args.binning else binning_from_config(settings.binning)

    if args.wav:
        source = WavPlayback(args.wav)
    else:
        source = LiveCapture(find_input_device(settings.device))

    sink = open_sink(settings.sink)
    try:
        if args.no_leds and not args.leds_file:
            # Terminal preview without a layout: spread the LEDs evenly left to right
            n = sink.led_count
            leds = LedConfig(1.0, tuple(((i + 0.5) / n, 0.5) for i in range(n)))
        else:
            leds = load_led_config(settings.led_config)

        accumulator = WindowAccumulator(window_length(settings.window_ms, source.sample_rate))
        delivery = FrameDelivery(sink, timeout=settings.sink.timeout)
        pipeline = Pipeline(accumulator, source.sample_rate, leds, binning, delivery,
                            threshold=settings.threshold, color=settings.color,
                            brightness=settings.brightness)
    except VibesError:
        sink.close()
        raise

    print(f"\n  VibesRGB")
    print(f"  {'='*40}")
    print(f"  LEDs: {len(leds)} ({len(leds.placed)} placed)")
    print(f"  Binning: {describe(binning)}")
    print(f"  Window: {accumulator.window_len} samples @ {source.sample_rate:.0f} Hz")
    print(f"  Output: {settings.sink.kind}")
    print("  Listening... Ctrl+C to stop.\n")

    stop = threading.Event()
    if isinstance(source, WavPlayback):
        def stop_when_done():
            source.finished.wait()
            stop.set()
        threading.Thread(target=stop_when_done, daemon=True).start()

    source.start(accumulator)
    try:
        pipeline.run(stop)
    except KeyboardInterrupt:
        print("\n\n  Stopping...")
    finally:
        stop.set()
        source.stop()
        delivery.close()
        print(f"  Final: {pipeline.get_diagnostics()}")
        print("  Done!")


def cmd_blink(args):
    """Flash one LED red on a dark controller until Ctrl+C."""
    settings = load_settings(args.config)
    if args.host:
        settings.sink.host = args.host
    if args.port:
        settings.sink.port = args.port
    if args.controller is not None:
        settings.sink.controller = args.controller
    sink = open_sink(settings.sink)
    if not 0 <= args.index < sink.led_count:
        sink.close()
        raise VibesError(f"LED {args.index} out of range (controller has {sink.led_count})")

    print(f"  Blinking LED {args.index} of {sink.led_count}. Ctrl+C to stop.")
    dark = [OFF] * sink.led_count
    lit = False
    try:
        while True:
            sink.update_all(dark)
            if lit:
                sink.update_one(args.index, RED)
            lit = not lit
            time.sleep(args.period)
    except KeyboardInterrupt:
        print()
    finally:
        sink.close()


def cmd_init_leds(args):
    settings = load_settings(args.config)
    sink = open_sink(settings.sink, args.num_leds)
    try:
        save_led_config(LedConfig.unplaced(sink.led_count), args.output)
    finally:
        sink.close()
    print(f"  Wrote {sink.led_count} unplaced LEDs to {args.output}")


def cmd_devices(args):
    devices = list_input_devices()
    if not devices:
        print("  (no input devices)")
    for i, name, channels, rate in devices:
        print(f"  #{i:<3d} {name}  ({channels} ch, {rate:.0f} Hz)")


def build_parser():
    parser = argparse.ArgumentParser(prog='vibesrgb', description='Audio-reactive OpenRGB lighting')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    sub = parser.add_subparsers(dest='command', required=True)

    run = sub.add_parser('run', help='Run the audio → LED pipeline')
    run.add_argument('--config', help='YAML settings file')
    run.add_argument('--leds-file', help='LED layout JSON from the configurator')
    run.add_argument('--device', help='Input device name substring (default: stereo mix)')
    run.add_argument('--wav', help='WAV file to play (instead of live audio)')
    run.add_argument('--binning', help="linear:N, log:BASE or ranges:LO-HI,LO-HI")
    run.add_argument('--window-ms', type=float, help='Window length / period in ms')
    run.add_argument('--threshold', type=float, help='Bin magnitude that lights an LED')
    run.add_argument('--brightness', type=float, help='Brightness cap (0-1)')
    run.add_argument('--host', help='OpenRGB server host')
    run.add_argument('--port', type=int, help='OpenRGB server port')
    run.add_argument('--controller', type=int, help='OpenRGB controller id')
    run.add_argument('--serial', help='Drive an Arduino strip on this serial port')
    run.add_argument('--num-leds', type=int, help='LED count for serial/terminal output')
    run.add_argument('--no-leds', action='store_true', help='Terminal visualization only (LEDs spread evenly unless --leds-file)')
    run.set_defaults(func=cmd_run)

    blink = sub.add_parser('blink', help='Blink one LED to locate it')
    blink.add_argument('index', type=int)
    blink.add_argument('--config', help='YAML settings file')
    blink.add_argument('--period', type=float, default=BLINK_PERIOD)
    blink.add_argument('--host')
    blink.add_argument('--port', type=int)
    blink.add_argument('--controller', type=int)
    blink.set_defaults(func=cmd_blink)

    init = sub.add_parser('init-leds', help='Write an empty LED layout for the controller')
    init.add_argument('output')
    init.add_argument('--config', help='YAML settings file')
    init.add_argument('--num-leds', type=int)
    init.set_defaults(func=cmd_init_leds)

    devices = sub.add_parser('devices', help='List audio input devices')
    devices.set_defaults(func=cmd_devices)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='  %(levelname)s %(name)s: %(message)s')
    try:
        args.func(args)
    except VibesError as e:
        logger.error("%s", e)
        sys.exit(1)


if __name__ == '__main__':
    main()
