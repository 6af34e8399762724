from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Decoder plugins that log every format check and chunk they read.
CHATTY_LOGGERS = ("PIL", "pillow_heif", "pillow_jxl")


def setup_logging(verbose: bool = False) -> None:
    """Stage timings log at INFO; the decoder plugins stay at WARNING unless verbose."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)
    plugin_level = logging.INFO if verbose else logging.WARNING
    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(plugin_level)


def use_color() -> bool:
    if os.environ.get("NO_COLOR") is not None:
        return False
    return os.environ.get("CLICOLOR") != "0" and os.environ.get("TERM") != "dumb"
