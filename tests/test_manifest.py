"""Tests for the request manifest loader."""

import tempfile

import pytest
import yaml


def _write_manifest(content: dict) -> str:
    """Write a manifest dict to a temp YAML file, return path."""
    f = tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False)
    yaml.dump(content, f)
    f.close()
    return f.name


def _trim(**overrides):
    t = {"start_time": 5, "end_time": 12, "output_path": "${out}/intro.mp4"}
    t.update(overrides)
    return t


def _minimal(**overrides):
    m = {
        "paths": {"raw": "/data/raw", "out": "/data/out"},
        "requests": [{"source": "${raw}/lecture.mp4", "trim": _trim()}],
    }
    m.update(overrides)
    return m


class TestLoadRequestManifest:
    def test_builds_requests(self):
        from clipops.manifest import load_request_manifest
        from clipops.operations import Trim

        (req,) = load_request_manifest(_write_manifest(_minimal()))
        assert req.source == "/data/raw/lecture.mp4"
        assert req.operation == Trim(5, 12, "/data/out/intro.mp4")

    def test_substitutes_nested_values(self):
        from clipops.manifest import load_request_manifest

        m = _minimal(requests=[{
            "merge": {
                "videos": ["${raw}/a.mp4", "${raw}/b.mp4"],
                "output_path": "${out}/merged.mp4",
            },
        }])
        (req,) = load_request_manifest(_write_manifest(m))
        assert req.operation.videos == ("/data/raw/a.mp4", "/data/raw/b.mp4")
        assert req.source is None

    def test_ids(self):
        from clipops.manifest import load_request_manifest

        m = _minimal(requests=[
            {"id": "a", "source": "x.mp4", "trim": _trim()},
            {"source": "x.mp4", "rotate": {"angle": 90, "output_path": "r.mp4"}},
        ])
        requests = load_request_manifest(_write_manifest(m))
        assert [r.request_id for r in requests] == ["a", None]

    def test_batch_request(self):
        from clipops.manifest import load_request_manifest

        m = _minimal(requests=[{
            "batch": {
                "output_directory": "${out}/batch",
                "items": [
                    {"source": "${raw}/a.mp4", "rotate": {"angle": 90}},
                    {"source": "${raw}/b.mp4", "compress": {"quality": "low"}},
                ],
            },
        }])
        (req,) = load_request_manifest(_write_manifest(m))
        items = req.operation.items
        assert [i.source for i in items] == ["/data/raw/a.mp4", "/data/raw/b.mp4"]
        assert req.operation.output_directory == "/data/out/batch"


class TestManifestValidation:
    def test_missing_requests(self):
        from clipops.manifest import load_request_manifest

        with pytest.raises(ValueError, match="missing required 'requests'"):
            load_request_manifest(_write_manifest({"paths": {}}))

    def test_empty_requests(self):
        from clipops.manifest import load_request_manifest

        with pytest.raises(ValueError, match="non-empty list"):
            load_request_manifest(_write_manifest({"requests": []}))

    def test_error_names_request_index(self):
        from clipops.errors import ValidationError
        from clipops.manifest import load_request_manifest

        m = _minimal(requests=[
            {"source": "x.mp4", "trim": _trim()},
            {"source": "x.mp4", "trim": _trim(start_time=20)},
        ])
        with pytest.raises(ValidationError, match="Request 1: Trim start_time"):
            load_request_manifest(_write_manifest(m))

    def test_unknown_path_variable(self):
        from clipops.manifest import load_request_manifest

        m = _minimal(requests=[{"source": "${nowhere}/x.mp4", "trim": _trim()}])
        with pytest.raises(ValueError, match="Request 0: Unknown path variable"):
            load_request_manifest(_write_manifest(m))

    def test_duplicate_ids(self):
        from clipops.manifest import load_request_manifest

        m = _minimal(requests=[
            {"id": "dup", "source": "x.mp4", "trim": _trim()},
            {"id": "dup", "source": "y.mp4", "trim": _trim()},
        ])
        with pytest.raises(ValueError, match="Duplicate request id"):
            load_request_manifest(_write_manifest(m))

    def test_two_operations_in_one_request(self):
        from clipops.manifest import load_request_manifest

        m = _minimal(requests=[{
            "source": "x.mp4",
            "trim": _trim(),
            "rotate": {"angle": 90, "output_path": "r.mp4"},
        }])
        with pytest.raises(ValueError, match="exactly one operation key"):
            load_request_manifest(_write_manifest(m))
