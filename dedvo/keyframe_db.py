"""The database of all keyframes with an inverted index from visual words to keyframes."""

from __future__ import annotations

import threading
from typing import Iterator

import numpy as np

from .conversion import invert_pose, transform_points
from .frame import _canvas, _draw_disk

_ACCUM_COLOR = (0.0, 0.0, 0.9)


class KeyframeDB:
    """Keyframes in insertion order plus, per word id, the keyframes containing that word."""

    def __init__(self, vocabulary_size):
        if vocabulary_size < 0:
            raise ValueError("vocabulary size must not be negative")
        self.inverted_file: list[list] = [[] for _ in range(int(vocabulary_size))]
        self.lock = threading.RLock()
        self._keyframes: list = []

    def add(self, keyframe) -> None:
        """Append a keyframe, link it to the previous one and index its words."""
        size = len(self.inverted_file)
        words = list(keyframe.bow_vec)
        for word in words:
            if not 0 <= word < size:
                raise IndexError(f"word id {word} is outside the vocabulary")
        with self.lock:
            if self._keyframes:
                previous = self._keyframes[-1]
                previous.child = keyframe
                keyframe.parent = previous
                keyframe.first_connection = False
            self._keyframes.append(keyframe)
            for word in words:
                self.inverted_file[word].append(keyframe)

    def connected_keyframes(self, n) -> list:
        """The ``n`` most recent keyframes, oldest first."""
        if n <= 0:
            return []
        with self.lock:
            return self._keyframes[-n:]

    def accumulated_points(self, num_keyframe, num_level) -> np.ndarray:
        """Points of recent keyframes drawn onto the newest keyframe's pyramid image."""
        with self.lock:
            if not self._keyframes:
                raise ValueError("the keyframe database is empty")
            keyframes = list(self._keyframes)

        last_frame = keyframes[-1].frame
        canvas = _canvas(last_frame.level(num_level))
        scale = 1.0 / (1 << int(num_level))
        camera = last_frame.camera
        twl_inv = invert_pose(last_frame.twc)

        start = len(keyframes) - 1
        stop = max(len(keyframes) - int(num_keyframe) + 1, -1)
        for idx in range(start, stop, -1):
            frame = keyframes[idx].frame
            tli = twl_inv @ frame.twc
            for point in frame.pointcloud:
                xyz = transform_points(tli, point.xyz)
                if xyz[2] <= 0:
                    continue
                uv = np.asarray(camera.xyz_to_uv(xyz), dtype=np.float64)
                if camera.is_in_image(uv, 2):
                    scaled = uv * scale
                    _draw_disk(canvas, int(scaled[0]), int(scaled[1]), 1, _ACCUM_COLOR)
        return canvas

    def __len__(self) -> int:
        return len(self._keyframes)

    def __iter__(self) -> Iterator:
        with self.lock:
            return iter(list(self._keyframes))