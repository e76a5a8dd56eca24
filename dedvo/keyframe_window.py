"""A fixed-size sliding window of the most recent keyframes."""

from __future__ import annotations

from collections import deque
from typing import Any, Iterator

import numpy as np


class KeyframeWindow:
    """Holds at most ``num_keyframe`` keyframes, dropping the oldest first."""

    def __init__(self, num_keyframe):
        if num_keyframe < 1:
            raise ValueError("a keyframe window must hold at least one keyframe")
        self.num_keyframe = int(num_keyframe)
        self._window: deque[Any] = deque(maxlen=self.num_keyframe)
        size = 6 * self.num_keyframe
        self.hessian = np.zeros((size, size))

    def add(self, keyframe) -> None:
        """Append a keyframe, evicting the oldest one when the window is full."""
        self._window.append(keyframe)

    @property
    def keyframes(self) -> list:
        return list(self._window)

    def __len__(self) -> int:
        return len(self._window)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._window)