#!/usr/bin/env python3
"""
Clatter - typewriter sounds for every keystroke.

Command-line shell around the dispatch engine:
- Loads the preset catalog (bundled + user presets file)
- Starts the dispatch engine on the configured preset and output device
- Feeds it from a global pynput keyboard hook
- Persists the last preset, device and enabled flag on exit
"""

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional
import argparse

from config.settings import ClatterConfig, load_config
from core.audio.devices import list_device_names
from core.dispatch.engine import AsyncDispatchEngine, DispatchEngine
from core.errors import (
    CatalogLoadFailed, ClatterError, DeviceEnumerationFailed, DeviceUnavailable, UnknownPreset
)
from core.keys.listener import KeyboardHook
from core.presets.catalog import PresetCatalog
from utils.events import ErrorEvent
from utils.metrics import log_latency

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, quiet: bool = False):
    """Configure root logging for the CLI."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler('clatter.log')
        ]
    )
    if quiet:
        logging.getLogger().setLevel(logging.WARNING)
    elif verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def load_catalog(config: ClatterConfig) -> PresetCatalog:
    """Load bundled presets plus the user presets file, if configured."""
    extra = []
    user_path = str(config.presets.get("path", "") or "")
    if user_path:
        extra.append(Path(user_path).expanduser())
    return PresetCatalog.load(
        extra,
        sample_rate=int(config.audio["sample_rate"]),
        channels=int(config.audio["channels"]),
    )


class TypewriterApp:
    """
    Orchestrates catalog, dispatch engine and keyboard hook.

    The keyboard hook and this class are the only command sources; all
    engine changes flow through its command queue.
    """

    def __init__(self, config: ClatterConfig, catalog: PresetCatalog,
                 config_path: Optional[str] = None, quiet: bool = False):
        self.config = config
        self.catalog = catalog
        self.config_path = config_path
        self.quiet = quiet

        self.engine = DispatchEngine(
            catalog,
            sink_config=config.sink_config(),
            on_error=self._on_engine_error
        )
        self.async_engine = AsyncDispatchEngine(self.engine)
        self.hook = KeyboardHook(
            self.engine.key_event,
            suppress_repeat=bool(config.ui.get("suppress_repeat", True))
        )

        self.shutdown_event = asyncio.Event()
        self.is_running = False

    def _on_engine_error(self, event: ErrorEvent):
        # runs on the engine worker thread
        if not self.quiet:
            print(f"[{event.stage}] {event.error}")

    async def start(self) -> bool:
        """Start the engine on the configured preset/device and hook the keyboard."""
        if self.is_running:
            return True

        preset = str(self.config.engine.get("preset") or self.catalog.names()[0])
        device = str(self.config.engine.get("device") or "") or None
        enabled = bool(self.config.engine.get("enabled", True))

        await self.async_engine.start()
        await self.async_engine.set_enabled(enabled)

        try:
            state = await self._configure(preset, device)
        except ClatterError as e:
            logger.error(f"Failed to configure engine: {e}")
            await self.async_engine.shutdown()
            return False

        try:
            self.hook.start()
        except Exception as e:
            logger.error(f"Failed to start keyboard hook: {e}")
            await self.async_engine.shutdown()
            return False

        self.is_running = True
        if not self.quiet:
            print("\n" + "="*60)
            print("CLATTER READY")
            print("="*60)
            print(f"Preset: {state.preset.name}")
            print(f"Device: {state.device.name}")
            print(f"Sound:  {'on' if state.enabled else 'muted'}")
            print("Press Ctrl+C to quit")
            print("="*60 + "\n")
        return True

    async def _configure(self, preset: str, device: Optional[str]):
        """Apply the saved preset/device, falling back to first preset and default device."""
        try:
            return await self.async_engine.change_config(preset, device)
        except UnknownPreset as e:
            fallback = self.catalog.names()[0]
            logger.warning(f"{e}, falling back to '{fallback}'")
            preset = fallback
        except (DeviceUnavailable, DeviceEnumerationFailed) as e:
            if device is None:
                raise
            # the saved device may be unplugged
            logger.warning(f"{e}, falling back to default device")
            device = None
        try:
            return await self.async_engine.change_config(preset, device)
        except (DeviceUnavailable, DeviceEnumerationFailed) as e:
            if device is None:
                raise
            logger.warning(f"{e}, falling back to default device")
            return await self.async_engine.change_config(preset, None)

    async def stop(self):
        """Stop hook and engine, then persist the last-used state."""
        if not self.is_running:
            return

        logger.info("Shutting down Clatter...")
        self.hook.stop()

        state = self.engine.state
        await self.async_engine.shutdown()

        if state is not None:
            self.config.engine["preset"] = state.preset.name
            self.config.engine["device"] = "" if state.device.is_default else state.device.name
            self.config.engine["enabled"] = state.enabled
            self.config.save(self.config_path)

        if not self.quiet:
            log_latency()

        self.is_running = False
        logger.info("Clatter stopped")


def setup_signal_handlers(app: TypewriterApp):
    """Setup graceful shutdown on SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received signal, initiating shutdown...")
        app.shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            # Windows event loops
            signal.signal(sig, lambda signum, frame: loop.call_soon_threadsafe(signal_handler))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Typewriter sounds for every keystroke")
    parser.add_argument("--preset", "-p", help="Sound preset name")
    parser.add_argument("--device", "-d", help="Output device name (case-insensitive)")
    parser.add_argument("--disabled", action="store_true", help="Start muted")
    parser.add_argument("--config", "-c", help="Path to config.toml")
    parser.add_argument("--list-presets", action="store_true", help="List presets and exit")
    parser.add_argument("--list-devices", action="store_true", help="List output devices and exit")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    parser.add_argument("--quiet", "-q", action="store_true", help="Quiet mode")
    return parser


async def main(argv=None):
    """Main entry point for Clatter."""
    args = build_parser().parse_args(argv)

    config = load_config(args.config)
    verbose = args.verbose or bool(config.ui.get("verbose"))
    quiet = args.quiet or bool(config.ui.get("quiet"))
    setup_logging(verbose=verbose, quiet=quiet)

    if args.list_devices:
        try:
            for name in list_device_names():
                print(name)
        except ClatterError as e:
            logger.error(str(e))
            return 1
        return 0

    try:
        catalog = load_catalog(config)
    except CatalogLoadFailed as e:
        logger.critical(f"Cannot load sound presets: {e}")
        return 1

    if args.list_presets:
        for name in catalog.names():
            print(name)
        return 0

    if args.preset:
        config.engine["preset"] = args.preset
    if args.device is not None:
        config.engine["device"] = args.device
    if args.disabled:
        config.engine["enabled"] = False

    app = TypewriterApp(config, catalog, config_path=args.config, quiet=quiet)
    setup_signal_handlers(app)

    try:
        if await app.start():
            await app.shutdown_event.wait()
        else:
            logger.error("Failed to start Clatter")
            return 1
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
    finally:
        await app.stop()

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
