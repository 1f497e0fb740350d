"""
tests/test_config.py — YAML Configuration Loader Tests
=======================================================
"""

from __future__ import annotations

import pytest

from yapper.config import XpConfig, YapperConfig, load_config


def _write(tmp_path, body: str):
    path = tmp_path / "config.yaml"
    path.write_text(body, encoding="utf-8")
    return path


class TestLoadConfig:
    def test_minimal_file_uses_xp_defaults(self, tmp_path):
        path = _write(tmp_path, (
            "community_name: Test Guild\n"
            "bot_prefix: '!'\n"
            "admin_role_id: 123\n"
        ))
        cfg = load_config(path)

        assert isinstance(cfg, YapperConfig)
        assert cfg.community_name == "Test Guild"
        assert cfg.admin_role_id == 123
        assert cfg.xp == XpConfig()
        assert cfg.xp.sync_interval_seconds == 20.0
        assert cfg.xp.overfetch_margin == 20

    def test_xp_block_overrides(self, tmp_path):
        path = _write(tmp_path, (
            "community_name: Test Guild\n"
            "bot_prefix: '!'\n"
            "admin_role_id: '456'\n"
            "xp:\n"
            "  sync_interval_seconds: 5\n"
            "  sync_timeout_seconds: 2.5\n"
            "  overfetch_margin: 0\n"
            "  page_size: 25\n"
            "  message_xp_cap: 300\n"
            "  weekly_reset_weekday: 6\n"
        ))
        cfg = load_config(path)

        assert cfg.admin_role_id == 456
        assert cfg.xp.sync_interval_seconds == 5.0
        assert cfg.xp.sync_timeout_seconds == 2.5
        assert cfg.xp.overfetch_margin == 0
        assert cfg.xp.page_size == 25
        assert cfg.xp.message_xp_cap == 300
        assert cfg.xp.flush_log_retention_days == 7
        assert cfg.xp.weekly_reset_weekday == 6

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.yaml.example"):
            load_config(tmp_path / "nope.yaml")

    def test_missing_required_key(self, tmp_path):
        path = _write(tmp_path, "community_name: Test Guild\n")
        with pytest.raises(KeyError):
            load_config(path)

    def test_invalid_xp_value(self, tmp_path):
        path = _write(tmp_path, (
            "community_name: Test Guild\n"
            "bot_prefix: '!'\n"
            "admin_role_id: 1\n"
            "xp:\n"
            "  sync_interval_seconds: 0\n"
        ))
        with pytest.raises(ValueError, match="sync_interval_seconds"):
            load_config(path)


class TestXpConfig:
    @pytest.mark.parametrize("kwargs", [
        {"sync_timeout_seconds": 0},
        {"overfetch_margin": -1},
        {"page_size": 0},
        {"message_xp_cap": -5},
        {"flush_log_retention_days": 0},
        {"weekly_reset_weekday": 7},
        {"weekly_reset_weekday": -1},
    ])
    def test_rejects_out_of_range(self, kwargs):
        with pytest.raises(ValueError):
            XpConfig(**kwargs)

    def test_is_frozen(self):
        cfg = XpConfig()
        with pytest.raises(AttributeError):
            cfg.page_size = 50  # type: ignore[misc]
