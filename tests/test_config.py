"""Tests for runtime settings."""

from pathlib import Path

import pytest
import yaml

from clipops.config import MIB, Settings, load_settings


class TestSettings:
    def test_defaults(self):
        s = Settings()
        assert s.default_timeout == 300
        assert s.long_timeout == 600
        assert s.max_output_bytes == 10 * MIB
        assert s.long_max_output_bytes == 20 * MIB
        assert s.scratch_dir == Path.cwd() / ".temp-frames"

    def test_limits(self):
        s = Settings()
        assert s.limits() == (300, 10 * MIB)
        assert s.limits(long_running=True) == (600, 20 * MIB)

    def test_rejects_zero_concurrency(self):
        with pytest.raises(ValueError, match="batch_concurrency"):
            Settings(batch_concurrency=0)

    def test_rejects_non_positive_timeout(self):
        with pytest.raises(ValueError, match="long_timeout"):
            Settings(long_timeout=0)

    def test_relative_scratch_dir_resolved(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert Settings(scratch_dir="scratch").scratch_dir == tmp_path / "scratch"


class TestLoadSettings:
    def test_no_file(self):
        s = load_settings(environ={})
        assert s.ffmpeg is None

    def test_yaml_values(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text(yaml.dump({"long_timeout": 900, "scratch_dir": str(tmp_path / "s")}))
        s = load_settings(path, environ={})
        assert s.long_timeout == 900
        assert s.scratch_dir == tmp_path / "s"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("")
        assert load_settings(path, environ={}).default_timeout == 300

    def test_unknown_key(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("timeout_seconds: 5\n")
        with pytest.raises(ValueError, match="unknown keys"):
            load_settings(path, environ={})

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="mapping"):
            load_settings(path, environ={})

    def test_environment_overrides_file(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("ffmpeg: /from/file\n")
        env = {"CLIPOPS_FFMPEG": "/from/env", "CLIPOPS_SCRATCH_DIR": str(tmp_path / "env")}
        s = load_settings(path, environ=env)
        assert s.ffmpeg == "/from/env"
        assert s.scratch_dir == tmp_path / "env"
