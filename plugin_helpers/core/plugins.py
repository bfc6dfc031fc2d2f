import logging
import os
import re
from typing import Optional

from .config import Config


logger = logging.getLogger(__name__)

VERSION_HEADER_RE = re.compile(r'^\s*\*\s*Version:\s*(.+)$', re.IGNORECASE | re.MULTILINE)


def plugin_main_file(plugin_slug: str, plugins_dir: Optional[str] = None, extension: Optional[str] = None) -> str:
    """Path of a plugin's main file: ``<plugins_dir>/<slug>/<slug>.<ext>``."""
    plugins_dir = plugins_dir if plugins_dir is not None else Config.PLUGINS_DIR
    extension = (extension or Config.PLUGIN_FILE_EXTENSION).lstrip('.')
    return os.path.join(plugins_dir, plugin_slug, f"{plugin_slug}.{extension}")


def get_plugin_version(plugin_slug: str, plugins_dir: Optional[str] = None, extension: Optional[str] = None) -> Optional[str]:
    """Read the ``* Version:`` line from a plugin's header comment.

    Returns None when the main file does not exist or declares no version.
    """
    main_file = plugin_main_file(plugin_slug, plugins_dir, extension)

    if not os.path.isfile(main_file):
        logger.debug(f"Plugin main file not found: {main_file}")
        return None

    with open(main_file, "r", encoding="utf-8", errors="replace") as f:
        contents = f.read()

    match = VERSION_HEADER_RE.search(contents)
    if match:
        return match.group(1).strip()

    return None
