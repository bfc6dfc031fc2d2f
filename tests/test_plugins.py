"""
Unit tests for plugin version lookup.
"""

from unittest.mock import patch

from plugin_helpers.core.config import Config
from plugin_helpers.core.plugins import get_plugin_version, plugin_main_file


def _write_plugin(root, slug, contents, extension="php"):
    plugin_dir = root / slug
    plugin_dir.mkdir(parents=True, exist_ok=True)
    main_file = plugin_dir / f"{slug}.{extension}"
    main_file.write_text(contents, encoding="utf-8")
    return main_file


class TestGetPluginVersion:
    """Test reading the Version header from a plugin main file."""

    def test_returns_trimmed_version(self, tmp_path):
        """The captured version is stripped of surrounding whitespace."""
        _write_plugin(
            tmp_path,
            "my-plugin",
            "<?php\n/**\n * Plugin Name: My Plugin\n * Version: 1.2.3-beta   \n * Author: Someone\n */\n",
        )

        assert get_plugin_version("my-plugin", plugins_dir=str(tmp_path)) == "1.2.3-beta"

    def test_header_match_is_case_insensitive(self, tmp_path):
        """A lower-case 'version:' header is still recognised."""
        _write_plugin(tmp_path, "shop", "/**\n * version: 2.0.1\n */\n")

        assert get_plugin_version("shop", plugins_dir=str(tmp_path)) == "2.0.1"

    def test_windows_line_endings(self, tmp_path):
        """Carriage returns do not leak into the version."""
        _write_plugin(tmp_path, "crlf", "/**\r\n * Version: 3.4\r\n */\r\n")

        assert get_plugin_version("crlf", plugins_dir=str(tmp_path)) == "3.4"

    def test_space_after_asterisk_is_optional(self, tmp_path):
        """'*Version:' with no space is accepted."""
        _write_plugin(tmp_path, "tight", "/**\n *Version: 1.0\n */\n")

        assert get_plugin_version("tight", plugins_dir=str(tmp_path)) == "1.0"

    def test_tab_after_asterisk(self, tmp_path):
        _write_plugin(tmp_path, "tabbed", "/**\n *\tVersion: 2.0\n */\n")

        assert get_plugin_version("tabbed", plugins_dir=str(tmp_path)) == "2.0"

    def test_missing_main_file_returns_none(self, tmp_path):
        """A plugin without its main file has no version."""
        (tmp_path / "ghost").mkdir()

        assert get_plugin_version("ghost", plugins_dir=str(tmp_path)) is None

    def test_missing_header_returns_none(self, tmp_path):
        """A main file without a Version line has no version."""
        _write_plugin(tmp_path, "bare", "<?php\n/**\n * Plugin Name: Bare\n */\n")

        assert get_plugin_version("bare", plugins_dir=str(tmp_path)) is None

    def test_version_outside_comment_block_is_ignored(self, tmp_path):
        """Only lines of the form '* Version:' count."""
        _write_plugin(tmp_path, "loose", "Version: 9.9\n")

        assert get_plugin_version("loose", plugins_dir=str(tmp_path)) is None

    def test_uses_configured_plugins_dir_and_extension(self, tmp_path):
        """Defaults come from Config when no directory is passed."""
        _write_plugin(tmp_path, "configured", '"""\n * Version: 0.5\n"""\n', extension="py")

        with patch.object(Config, "PLUGINS_DIR", str(tmp_path)), \
                patch.object(Config, "PLUGIN_FILE_EXTENSION", "py"):
            assert get_plugin_version("configured") == "0.5"


class TestPluginMainFile:
    """Test main file path construction."""

    def test_slug_is_directory_and_file_name(self, tmp_path):
        """The slug is used for both the directory and the file base name."""
        path = plugin_main_file("forms", plugins_dir=str(tmp_path), extension=".php")

        assert path == str(tmp_path / "forms" / "forms.php")
