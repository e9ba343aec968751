"""Plugin definitions shipped with the package."""

from pathlib import Path

BUNDLED_PLUGIN_DIR = Path(__file__).resolve().parent
