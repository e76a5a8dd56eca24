"""Detects when the camera revisits a place by comparing bag-of-words vectors of keyframes."""

from __future__ import annotations

import logging
import threading
from collections import deque

logger = logging.getLogger(__name__)

_MIN_ID_GAP_AFTER_LOOP = 10
_NUM_CONNECTED = 6
_COMMON_WORD_RATIO = 0.75
_RETAIN_RATIO = 0.75
_MIN_LOOP_ID_DISTANCE = 50


class LoopClosing:
    """Queue of incoming keyframes and the place-recognition logic run on them.

    ``vocabulary`` must provide ``score(bow_a, bow_b)`` returning a similarity.
    Keyframes must carry ``id``, ``bow_vec`` (word id to weight), ``loop_query``,
    ``num_loop_word``, ``loop_score``, ``first_connection``, ``parent`` and ``child``.
    """

    def __init__(self, keyframe_db, vocabulary):
        self.keyframe_db = keyframe_db
        self.vocabulary = vocabulary
        self.keyframes: list = []
        self.current_keyframe = None
        self.loop_keyframe = None
        self.last_loop_id = 0
        self.num_loop = 0
        self._queue: deque = deque()
        self._queue_lock = threading.Lock()
        self._finish_lock = threading.Lock()
        self._request_finish = False
        self._is_finished = True

    def insert_keyframe(self, keyframe) -> None:
        """Queue a keyframe for loop detection; the first keyframe (id 0) is ignored."""
        with self._queue_lock:
            if keyframe.id != 0:
                self._queue.append(keyframe)

    def check_new_keyframe(self) -> bool:
        """Whether a keyframe is waiting in the queue."""
        with self._queue_lock:
            return bool(self._queue)

    def _set_finished(self, value: bool) -> None:
        with self._finish_lock:
            self._is_finished = value

    def detect_loop(self) -> bool:
        """Take the next queued keyframe and look for a place it revisits."""
        with self._queue_lock:
            if not self._queue:
                raise IndexError("no keyframe is queued")
            current = self._queue.popleft()
            self.current_keyframe = current
            self.keyframes.append(current)

        if current.id < self.last_loop_id + _MIN_ID_GAP_AFTER_LOOP:
            return False

        min_si = 1.0
        for keyframe in self.keyframe_db.connected_keyframes(_NUM_CONNECTED):
            si = self.vocabulary.score(current.bow_vec, keyframe.bow_vec)
            min_si = min(min_si, si)

        candidates = self.detect_loop_candidate(current, min_si)
        logger.debug("[LoopClosing]\t Number of candidate keyframe size : %d", len(candidates))
        if not candidates:
            return False

        max_score = 0.0
        for candidate in candidates:
            if candidate.loop_score > max_score:
                max_score = candidate.loop_score
                self.loop_keyframe = candidate

        self.last_loop_id = current.id
        self.num_loop += 1
        return True

    def detect_loop_candidate(self, keyframe, min_si) -> list:
        """Keyframes that share enough words with ``keyframe`` and score at least ``min_si``."""
        current = keyframe
        sharing: list = []
        for word in current.bow_vec:
            for other in self.keyframe_db.inverted_file[word]:
                if other.id == current.id:
                    continue
                if other.loop_query != current.id:
                    other.num_loop_word = 0
                    other.loop_query = current.id
                    sharing.append(other)
                other.num_loop_word += 1

        if not sharing:
            return []

        max_common_words = max(0, max(kf.num_loop_word for kf in sharing))
        min_common_words = int(_COMMON_WORD_RATIO * max_common_words)

        scored: list[tuple[float, object]] = []
        for other in sharing:
            if other.id == current.id:
                continue
            if other.num_loop_word > min_common_words:
                si = self.vocabulary.score(current.bow_vec, other.bow_vec)
                other.loop_score = si
                if si >= min_si:
                    scored.append((si, other))

        if not scored:
            return []

        accepted: list[tuple[float, object]] = []
        best_accept_score = min_si
        for score, other in scored:
            if other.id == current.id or other.first_connection:
                continue
            best_score = score
            accept_score = score
            best_keyframe = other
            for neighbour in (other.parent, other.child):
                if neighbour is None:
                    continue
                if (neighbour.loop_query == current.id
                        and neighbour.num_loop_word > min_common_words):
                    accept_score += neighbour.loop_score
                    if neighbour.loop_score > best_score:
                        best_keyframe = neighbour
                        best_score = neighbour.loop_score
            accepted.append((accept_score, best_keyframe))
            if accept_score > best_score:
                best_accept_score = accept_score

        min_score_retain = _RETAIN_RATIO * best_accept_score
        already_added: set[int] = set()
        candidates: list = []
        for accept_score, other in accepted:
            if accept_score <= min_score_retain:
                continue
            if current.id - other.id < _MIN_LOOP_ID_DISTANCE:
                continue
            if id(other) not in already_added:
                candidates.append(other)
                already_added.add(id(other))
        return candidates

    def run_without_thread(self) -> bool:
        """Process at most one queued keyframe; return whether a loop was detected."""
        self._set_finished(False)
        detected = False
        if self.check_new_keyframe():
            detected = self.detect_loop()
            self._set_finished(True)
        return detected

    def request_finish(self) -> None:
        """Ask the loop-closing worker to stop."""
        with self._finish_lock:
            self._request_finish = True

    def check_finish(self) -> bool:
        """Whether stopping has been requested."""
        with self._finish_lock:
            return self._request_finish

    def is_finished(self) -> bool:
        """Whether no keyframe is being processed."""
        with self._finish_lock:
            return self._is_finished