"""
Tests for RendererSettings loading and coercion.
"""
import json

import pytest

from plotpipe.core.constants.timing import RENDERER_READ_TIMEOUT_S
from plotpipe.core.settings import RendererSettings, to_bool
from plotpipe.core.settings.renderer_settings import to_optional_float


class TestCoercion:
    """Tests for the value helpers."""

    @pytest.mark.parametrize("value,expected", [
        (True, True), ("yes", True), ("1", True), (" ON ", True),
        (False, False), ("no", False), ("0", False), ("off", False),
    ])
    def test_to_bool(self, value, expected):
        assert to_bool(value) is expected

    def test_to_bool_default_for_garbage(self):
        assert to_bool("maybe", default=True) is True
        assert to_bool(None, default=False) is False

    @pytest.mark.parametrize("value,expected", [
        ("30", 30.0), (12, 12.0), ("none", None), ("off", None), ("", None), (0, None), (-5, None),
    ])
    def test_to_optional_float(self, value, expected):
        assert to_optional_float(value, 99.0) == expected

    def test_to_optional_float_garbage_keeps_default(self):
        assert to_optional_float("soon", 99.0) == 99.0


class TestDefaults:
    """Tests for default settings."""

    def test_defaults(self):
        settings = RendererSettings()
        assert settings.binary is None
        assert settings.read_timeout_s == RENDERER_READ_TIMEOUT_S
        assert settings.restart_backoff_base_ms == 0
        assert settings.warm_up is True

    def test_frozen(self):
        settings = RendererSettings()
        with pytest.raises(Exception):
            settings.binary = "kaleido"


class TestMerged:
    """Tests for merged()."""

    def test_overrides_applied(self):
        settings = RendererSettings().merged(binary="/opt/kaleido", read_timeout_s=5.0)
        assert settings.binary == "/opt/kaleido"
        assert settings.read_timeout_s == 5.0

    def test_none_values_skipped(self):
        base = RendererSettings(binary="/opt/kaleido")
        assert base.merged(binary=None) is base

    def test_unknown_key_rejected(self):
        with pytest.raises(ValueError, match="bogus"):
            RendererSettings().merged(bogus=1)


class TestFromEnv:
    """Tests for from_env()."""

    def test_reads_prefixed_variables(self):
        settings = RendererSettings.from_env({
            "PLOTPIPE_BINARY": "/usr/local/bin/kaleido",
            "PLOTPIPE_READ_TIMEOUT_S": "15",
            "PLOTPIPE_STARTUP_TIMEOUT_S": "off",
            "PLOTPIPE_RESTART_BACKOFF_BASE_MS": "250",
            "PLOTPIPE_WARM_UP": "false",
            "PLOTPIPE_EXTRA_ARGS": "--log-level 0",
        })
        assert settings.binary == "/usr/local/bin/kaleido"
        assert settings.read_timeout_s == 15.0
        assert settings.startup_timeout_s is None
        assert settings.restart_backoff_base_ms == 250
        assert settings.warm_up is False
        assert settings.extra_args == ("--log-level", "0")

    def test_kaleido_alias(self):
        settings = RendererSettings.from_env({"PLOTPIPE_KALEIDO": "/opt/kaleido/kaleido"})
        assert settings.binary == "/opt/kaleido/kaleido"

    def test_binary_wins_over_alias(self):
        settings = RendererSettings.from_env({
            "PLOTPIPE_BINARY": "/a/kaleido",
            "PLOTPIPE_KALEIDO": "/b/kaleido",
        })
        assert settings.binary == "/a/kaleido"

    def test_empty_environment(self):
        assert RendererSettings.from_env({}) == RendererSettings()


class TestFromFile:
    """Tests for from_file()."""

    def test_top_level(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"read_timeout_s": 7, "env": {"DISPLAY": ":0"}}), encoding="utf-8")

        settings = RendererSettings.from_file(path)
        assert settings.read_timeout_s == 7.0
        assert settings.env == {"DISPLAY": ":0"}

    def test_renderer_section(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"renderer": {"binary": "kaleido", "extra_args": ["--x"]}}), encoding="utf-8")

        settings = RendererSettings.from_file(path)
        assert settings.binary == "kaleido"
        assert settings.extra_args == ("--x",)

    def test_unknown_keys_ignored(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"colour": "red"}), encoding="utf-8")
        assert RendererSettings.from_file(path) == RendererSettings()

    def test_non_object_rejected(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(ValueError):
            RendererSettings.from_file(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(OSError):
            RendererSettings.from_file(tmp_path / "absent.json")
