from __future__ import annotations

"""CLI entrypoint for the InventoryT printer service.

The OS launches this once per inventoryt-printer:// activation with the URL as
the only argument. Without an argument it checks the protocol registration.
"""

import argparse
import logging
import sys
from pathlib import Path

from inventoryt_printer.config import ConfigError, JsonConfigStore, default_config_path, load_config
from inventoryt_printer.connectivity import UrllibProbe
from inventoryt_printer.dispatch import AppContext, DispatchController
from inventoryt_printer.logs import configure_logging
from inventoryt_printer.notifications import DesktopNotifier
from inventoryt_printer.printing import print_sink_for_platform
from inventoryt_printer.protocol_handler import for_platform

EXIT_STARTUP_FAILURE = 1


def _build_context(config_store: JsonConfigStore) -> AppContext:
    registration = for_platform()
    return AppContext(
        config_store=config_store,
        notifier=DesktopNotifier(system=registration.system),
        http_probe=UrllibProbe(),
        print_sink=print_sink_for_platform(registration.system, share=config_store.get().printer_share),
        registration=registration,
    )


def main(argv: list[str] | None = None) -> int:
    """Run one invocation of the printer service."""
    parser = argparse.ArgumentParser(description="InventoryT printer service")
    parser.add_argument("url", nargs="?", help="inventoryt-printer:// activation URL")
    parser.add_argument("--config", help="Override config path")
    args = parser.parse_args(argv)

    config_path = Path(args.config).expanduser() if args.config else default_config_path()
    try:
        config = load_config(config_path)
    except (ConfigError, OSError) as exc:
        print(f"Failed to load config from {config_path}: {exc}", file=sys.stderr)
        return EXIT_STARTUP_FAILURE

    try:
        logger = configure_logging(config)
    except OSError as exc:
        print(f"Failed to initialize logger: {exc}", file=sys.stderr)
        return EXIT_STARTUP_FAILURE

    logger.info("=== InventoryT Printer Service ===")
    logger.info("Waiting for print requests...")
    logger.info("Service started")
    logger.debug("Config loaded from %s", config_path)

    context = _build_context(JsonConfigStore(config_path, config))
    try:
        return DispatchController(context).run([args.url] if args.url else [])
    finally:
        logging.shutdown()


if __name__ == "__main__":
    sys.exit(main())
