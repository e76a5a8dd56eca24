import os

import numpy as np
import pytest

from dedvo import config as config_module
from dedvo.config import CameraInfo, Config, TrackerSettings, get_config, load_config

SETTINGS = """%YAML:1.0
---
Camera.width: 1241
Camera.height: 376
Camera.fx: 718.856
Camera.fy: 718.856
Camera.cx: 607.1928
Camera.cy: 185.2157
Camera.k1: 0.0
Camera.k2: 0.0
Camera.p1: 0.0
Camera.p2: 0.0
Camera.d0: 0.1
Camera.d1: -0.2
Camera.d2: 0.0
Camera.d3: 0.0
Camera.d4: 0.0
Camera.RGB: 1
extrinsicMatrix: !!opencv-matrix
   rows: 4
   cols: 4
   dt: f
   data: [ 0.0, -1.0, 0.0, 0.1,
           0.0, 0.0, -1.0, -0.2,
           1.0, 0.0, 0.0, 0.3,
           0.0, 0.0, 0.0, 1.0 ]
Tracker.levels: 5
Tracker.min_level: 1
Tracker.max_level: 4
Tracker.max_iteration: 100
Tracker.scale_estimator: TDistributionScale
Tracker.weight_function: TDistributionWeight
LoopClosure.f_vocabulary: ORBvoc.bin
"""


@pytest.fixture
def settings_dir(tmp_path):
    (tmp_path / "settings.yaml").write_text(SETTINGS, encoding="utf-8")
    return str(tmp_path) + os.sep


def test_camera_fields_are_read(settings_dir):
    cfg = Config.from_file(settings_dir, "settings.yaml")
    assert cfg.camera.width == 1241
    assert cfg.camera.height == 376
    assert cfg.camera.fx == pytest.approx(718.856)
    assert cfg.camera.cy == pytest.approx(185.2157)
    assert cfg.camera.distortion == (0.1, -0.2, 0.0, 0.0, 0.0)
    assert cfg.camera.image_type == 1


def test_extrinsic_matrix_is_read_row_major(settings_dir):
    cfg = Config.from_file(settings_dir, "settings.yaml")
    expected = np.array(
        [[0.0, -1.0, 0.0, 0.1], [0.0, 0.0, -1.0, -0.2], [1.0, 0.0, 0.0, 0.3], [0.0, 0.0, 0.0, 1.0]]
    )
    np.testing.assert_allclose(cfg.extrinsic, expected)


def test_tracker_settings_and_shortcuts(settings_dir):
    cfg = Config.from_file(settings_dir, "settings.yaml")
    assert cfg.tracker.levels == 5
    assert (cfg.num_levels, cfg.min_level, cfg.max_level, cfg.max_iterations) == (5, 1, 4, 100)
    assert cfg.tracker.scale_estimator == "TDistributionScale"
    assert cfg.tracker.weight_function == "TDistributionWeight"


def test_vocabulary_path_is_relative_to_settings_dir(settings_dir):
    cfg = Config.from_file(settings_dir, "settings.yaml")
    assert cfg.bow_fname == settings_dir + "ORBvoc.bin"


def test_load_config_matches_from_file(settings_dir):
    direct = Config.from_file(settings_dir, "settings.yaml")
    loaded = load_config(settings_dir + "settings.yaml")
    assert loaded.camera == direct.camera
    assert loaded.tracker == direct.tracker
    assert loaded.bow_fname == direct.bow_fname
    np.testing.assert_allclose(loaded.extrinsic, direct.extrinsic)


def test_missing_scalars_default_to_zero_and_empty(tmp_path):
    text = SETTINGS.split("Tracker.levels")[0]
    (tmp_path / "partial.yaml").write_text(text, encoding="utf-8")
    cfg = load_config(tmp_path / "partial.yaml")
    assert cfg.tracker.levels == 0
    assert cfg.tracker.scale_estimator == ""
    assert cfg.bow_fname == str(tmp_path) + os.sep


def test_missing_extrinsic_raises(tmp_path):
    (tmp_path / "noext.yaml").write_text("Camera.width: 10\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(tmp_path / "noext.yaml")


def test_matrix_with_wrong_value_count_raises(tmp_path):
    text = "extrinsicMatrix: !!opencv-matrix\n  rows: 4\n  cols: 4\n  dt: f\n  data: [1.0, 2.0]\n"
    (tmp_path / "bad.yaml").write_text(text, encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(tmp_path / "bad.yaml")


def test_non_square_extrinsic_raises(tmp_path):
    text = "extrinsicMatrix: !!opencv-matrix\n  rows: 3\n  cols: 3\n  dt: f\n  data: [1, 0, 0, 0, 1, 0, 0, 0, 1]\n"
    (tmp_path / "small.yaml").write_text(text, encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(tmp_path / "small.yaml")


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        Config.from_file(str(tmp_path) + os.sep, "absent.yaml")


def test_default_config_is_empty():
    cfg = Config()
    assert cfg.camera == CameraInfo()
    assert cfg.tracker == TrackerSettings()
    np.testing.assert_allclose(cfg.extrinsic, np.eye(4))


def test_describe_lists_settings(settings_dir):
    text = Config.from_file(settings_dir, "settings.yaml").describe()
    assert "[Configuration]\t fx : 718.856" in text
    assert "[Configuration]\t The number of pyramid level: 5" in text
    assert "Use weight scale: true" in text
    assert text.endswith("Vocabulary file : " + settings_dir + "ORBvoc.bin")


def test_get_config_is_shared(settings_dir, monkeypatch):
    monkeypatch.setattr(config_module, "_instance", None)
    first = get_config(settings_dir, "settings.yaml")
    second = get_config()
    assert first is second
    assert second.camera.width == 1241


def test_get_config_without_file_gives_default(monkeypatch):
    monkeypatch.setattr(config_module, "_instance", None)
    cfg = get_config()
    assert cfg.camera.width == 0
    assert get_config() is cfg