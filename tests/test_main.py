"""
Tests for the CLI entrypoint (raw-dump mode, no model needed).
"""

import json

import numpy as np
import pytest

import main

# 64x64 input: 168 anchors; stride 8, cell (3, 3), size 32
_ANCHORS = 168
_FACE_ANCHOR = (3 * 8 + 3) * 2 + 1


def _write_dump(path, **overrides):
    arrays = {
        "loc": np.zeros((1, _ANCHORS, 4), dtype=np.float32),
        "landms": np.zeros((1, _ANCHORS, 10), dtype=np.float32),
        "conf": np.tile(np.array([5.0, -5.0], dtype=np.float32), (1, _ANCHORS, 1)),
    }
    arrays["conf"][0, _FACE_ANCHOR] = [-5.0, 5.0]
    arrays.update(overrides)
    np.savez(path, **arrays)


def test_raw_dump_to_json(tmp_path):
    dump = tmp_path / "frame.npz"
    _write_dump(dump)
    out_dir = tmp_path / "out"

    code = main.main([
        "--raw", str(dump),
        "--input-size", "64", "64",
        "--formats", "json,csv",
        "--output-path", str(out_dir),
    ])

    assert code == 0
    payload = json.loads((out_dir / "frame.json").read_text(encoding="utf-8"))
    assert payload["total_faces"] == 1
    face = payload["frames"][0]["faces"][0]
    assert face["left"] == 12.0
    assert face["width"] == 32.0
    assert (out_dir / "frame.csv").is_file()


def test_raw_dump_wrong_input_size(tmp_path):
    """Buffers that do not fit the prior grid make the run fail."""
    dump = tmp_path / "frame.npz"
    _write_dump(dump)

    code = main.main(["--raw", str(dump), "--output-path", str(tmp_path / "out")])

    assert code == 1


def test_raw_dump_missing_array(tmp_path):
    dump = tmp_path / "partial.npz"
    np.savez(dump, loc=np.zeros((1, 4)), conf=np.zeros((1, 2)))

    assert main.main(["--raw", str(dump), "--input-size", "64", "64"]) == 1


def test_invalid_cli_threshold(tmp_path):
    dump = tmp_path / "frame.npz"
    _write_dump(dump)

    assert main.main(["--raw", str(dump), "--confidence", "2.0"]) == 1


def test_cli_overrides_are_validated():
    """CLI values go through the same validation as file and env values."""
    args = main.parse_args(["--raw", "x.npz", "--nms", "1.5"])

    with pytest.raises(ValueError, match="nms_threshold"):
        main.apply_cli_overrides(main.load_config(None), args)
