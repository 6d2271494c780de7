"""Tests for the per-request scratch registry."""

import pytest

from clipops.scratch import ScratchScope, scratch_scope


class TestScratchScope:
    def test_new_path_is_unique_and_registered(self, tmp_path):
        scope = ScratchScope("req1", tmp_path)
        a = scope.new_path("temp-video", ".mp4")
        b = scope.new_path("temp-video", ".mp4")
        assert a != b
        assert a.parent == tmp_path
        assert a.name.startswith("temp-video-req1-")
        assert a.suffix == ".mp4"
        assert [e.path for e in scope.entries] == [a, b]
        assert not a.exists()

    def test_created_by_defaults_to_prefix(self, tmp_path):
        scope = ScratchScope("r", tmp_path)
        scope.new_path("concat", ".txt")
        scope.new_path("frame", ".png", created_by="freeze")
        assert [e.created_by for e in scope.entries] == ["concat", "freeze"]

    def test_root_is_created_lazily(self, tmp_path):
        root = tmp_path / "deep" / "scratch"
        scope = ScratchScope("r", root)
        assert not root.exists()
        scope.new_path("x")
        assert root.is_dir()

    def test_relative_root_is_made_absolute(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        scope = ScratchScope("r", "scratch")
        assert scope.root == tmp_path / "scratch"
        assert scope.new_path("part", ".mp4").is_absolute()

    def test_cleanup_removes_files_and_dirs(self, tmp_path):
        scope = ScratchScope("r", tmp_path)
        f = scope.new_path("part", ".mp4")
        f.write_bytes(b"data")
        d = scope.new_dir("frames")
        (d / "frame-000001.png").write_bytes(b"png")
        scope.cleanup()
        assert not f.exists()
        assert not d.exists()
        assert scope.entries == []

    def test_cleanup_tolerates_missing_files(self, tmp_path):
        scope = ScratchScope("r", tmp_path)
        scope.new_path("never-written")
        scope.cleanup()
        assert scope.entries == []

    def test_registered_external_path(self, tmp_path):
        scope = ScratchScope("r", tmp_path / "scratch")
        external = tmp_path / "elsewhere.bin"
        external.write_bytes(b"x")
        scope.register(external, "download")
        scope.cleanup()
        assert not external.exists()


class TestScratchScopeContext:
    def test_cleanup_on_success_keeps_outputs(self, tmp_path):
        output = tmp_path / "out.mp4"
        with scratch_scope("r", tmp_path / "scratch") as scope:
            tmp = scope.new_path("part", ".mp4")
            tmp.write_bytes(b"x")
            scope.register_output(output)
            output.write_bytes(b"result")
        assert not tmp.exists()
        assert output.exists()

    def test_failure_removes_outputs(self, tmp_path):
        output = tmp_path / "out.mp4"
        with pytest.raises(RuntimeError):
            with scratch_scope("r", tmp_path / "scratch") as scope:
                tmp = scope.new_path("part", ".mp4")
                tmp.write_bytes(b"x")
                scope.register_output(output)
                output.write_bytes(b"half")
                raise RuntimeError("boom")
        assert not tmp.exists()
        assert not output.exists()

    def test_scratch_root_left_empty(self, tmp_path):
        root = tmp_path / "scratch"
        with scratch_scope("r", root) as scope:
            for i in range(3):
                scope.new_path(f"p{i}").write_bytes(b"x")
            scope.new_dir("frames")
        assert list(root.iterdir()) == []
