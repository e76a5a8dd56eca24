"""Settings for camera, camera-lidar extrinsics, tracker and loop closure."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np
import yaml

logger = logging.getLogger(__name__)


class _SettingsLoader(yaml.SafeLoader):
    """YAML loader that understands matrices written as ``!!opencv-matrix``."""


def _construct_matrix(loader: yaml.SafeLoader, node: yaml.Node) -> np.ndarray:
    mapping = loader.construct_mapping(node, deep=True)
    try:
        rows = int(mapping["rows"])
        cols = int(mapping["cols"])
    except KeyError as exc:
        raise ValueError(f"matrix is missing its {exc.args[0]!r} entry") from None
    data = np.asarray(mapping.get("data", []), dtype=np.float64)
    if data.size != rows * cols:
        raise ValueError(
            f"matrix declares {rows}x{cols} but holds {data.size} values"
        )
    return data.reshape(rows, cols)


_SettingsLoader.add_constructor("tag:yaml.org,2002:opencv-matrix", _construct_matrix)


def _parse_settings(text: str) -> dict[str, Any]:
    lines = text.splitlines()
    body = [line for line in lines if not line.startswith("%YAML")]
    data = yaml.load("\n".join(body), Loader=_SettingsLoader)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("settings file must hold a mapping at the top level")
    return data


def _int(data: dict, key: str) -> int:
    value = data.get(key)
    return 0 if value is None else int(round(float(value)))


def _float(data: dict, key: str) -> float:
    value = data.get(key)
    return 0.0 if value is None else float(value)


def _str(data: dict, key: str) -> str:
    value = data.get(key)
    return "" if value is None else str(value)


@dataclass
class CameraInfo:
    """Pinhole intrinsics and distortion coefficients of the camera."""

    width: int = 0
    height: int = 0
    fx: float = 0.0
    fy: float = 0.0
    cx: float = 0.0
    cy: float = 0.0
    k1: float = 0.0
    k2: float = 0.0
    p1: float = 0.0
    p2: float = 0.0
    d0: float = 0.0
    d1: float = 0.0
    d2: float = 0.0
    d3: float = 0.0
    d4: float = 0.0
    image_type: int = 0

    @property
    def distortion(self) -> tuple[float, float, float, float, float]:
        return (self.d0, self.d1, self.d2, self.d3, self.d4)


@dataclass
class TrackerSettings:
    """Image-pyramid and optimisation settings of the direct tracker."""

    levels: int = 0
    min_level: int = 0
    max_level: int = 0
    max_iteration: int = 0
    scale_estimator: str = ""
    weight_function: str = ""
    use_weight_scale: bool = True


@dataclass
class Config:
    """All settings of the odometry pipeline."""

    camera: CameraInfo = field(default_factory=CameraInfo)
    extrinsic: np.ndarray = field(default_factory=lambda: np.eye(4))
    tracker: TrackerSettings = field(default_factory=TrackerSettings)
    bow_fname: str = ""

    @property
    def num_levels(self) -> int:
        return self.tracker.levels

    @property
    def min_level(self) -> int:
        return self.tracker.min_level

    @property
    def max_level(self) -> int:
        return self.tracker.max_level

    @property
    def max_iterations(self) -> int:
        return self.tracker.max_iteration

    @classmethod
    def from_file(cls, path, fname) -> "Config":
        """Read settings from ``path + fname``; the vocabulary file is relative to ``path``."""
        prefix = str(path)
        full = prefix + str(fname)
        logger.info("[Configuration]\t Load configuration from \"%s\"", fname)
        with open(full, encoding="utf-8") as handle:
            data = _parse_settings(handle.read())

        camera = CameraInfo(
            width=_int(data, "Camera.width"),
            height=_int(data, "Camera.height"),
            fx=_float(data, "Camera.fx"),
            fy=_float(data, "Camera.fy"),
            cx=_float(data, "Camera.cx"),
            cy=_float(data, "Camera.cy"),
            k1=_float(data, "Camera.k1"),
            k2=_float(data, "Camera.k2"),
            p1=_float(data, "Camera.p1"),
            p2=_float(data, "Camera.p2"),
            d0=_float(data, "Camera.d0"),
            d1=_float(data, "Camera.d1"),
            d2=_float(data, "Camera.d2"),
            d3=_float(data, "Camera.d3"),
            d4=_float(data, "Camera.d4"),
            image_type=_int(data, "Camera.RGB"),
        )

        if "extrinsicMatrix" not in data:
            raise ValueError("settings file has no extrinsicMatrix")
        extrinsic = np.asarray(data["extrinsicMatrix"], dtype=np.float64)
        if extrinsic.shape != (4, 4):
            raise ValueError("extrinsicMatrix must be a 4x4 matrix")

        tracker = TrackerSettings(
            levels=_int(data, "Tracker.levels"),
            min_level=_int(data, "Tracker.min_level"),
            max_level=_int(data, "Tracker.max_level"),
            max_iteration=_int(data, "Tracker.max_iteration"),
            scale_estimator=_str(data, "Tracker.scale_estimator"),
            weight_function=_str(data, "Tracker.weight_function"),
        )

        bow_fname = prefix + _str(data, "LoopClosure.f_vocabulary")
        config = cls(camera=camera, extrinsic=extrinsic, tracker=tracker, bow_fname=bow_fname)
        logger.info("%s", config.describe())
        return config

    def describe(self) -> str:
        """Human-readable summary of every setting."""
        cam = self.camera
        trk = self.tracker
        distortion = ", ".join(str(d) for d in cam.distortion)
        matrix = "\n".join(" ".join(f"{v:g}" for v in row) for row in self.extrinsic)
        lines = [
            "[Configuration]\t Camera information",
            f"[Configuration]\t width : {cam.width}",
            f"[Configuration]\t height : {cam.height}",
            f"[Configuration]\t fx : {cam.fx}",
            f"[Configuration]\t fy : {cam.fy}",
            f"[Configuration]\t cx : {cam.cx}",
            f"[Configuration]\t cy : {cam.cy}",
            f"[Configuration]\t distortion d[5] : [ {distortion}]",
            "",
            "[Configuration]\t camera-lidar information",
            matrix,
            "",
            "[Configuration]\t Tracker information",
            f"[Configuration]\t The number of pyramid level: {trk.levels}",
            f"[Configuration]\t The minimum pyramid level: {trk.min_level}",
            f"[Configuration]\t The maximum pyramid level: {trk.max_level}",
            f"[Configuration]\t The maximum iteration: {trk.max_iteration}",
            f"[Configuration]\t Use weight scale: {'true' if trk.use_weight_scale else 'false'}",
            f"[Configuration]\t Scale Estimator: {trk.scale_estimator}",
            f"[Configuration]\t Weight Function: {trk.weight_function}",
            "",
            "[Configuration]\t LoopClosure information",
            f"[Configuration]\t Vocabulary file : {self.bow_fname}",
        ]
        return "\n".join(lines)


def load_config(path) -> Config:
    """Read settings from a single file path."""
    p = Path(path)
    return Config.from_file(str(p.parent) + os.sep, p.name)


_instance: Config | None = None


def get_config(path=None, fname=None) -> Config:
    """Return the shared configuration, creating it on first use."""
    global _instance
    if _instance is None:
        if path is None:
            _instance = Config()
        elif fname is None:
            _instance = load_config(path)
        else:
            _instance = Config.from_file(path, fname)
    return _instance