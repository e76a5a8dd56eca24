# dedvo

Building blocks for direct visual odometry with a camera and a lidar,
written on top of NumPy. The package is a library; it has no command-line
program.

## Modules

- `dedvo.imgproc`: small image operations on NumPy arrays. `fast_detect`
  finds FAST-9 corners on an 8-bit grayscale image and returns `KeyPoint`
  objects (`x`, `y`, `size`, `angle`, `response`, `octave`).
  `resize_bilinear`, `gaussian_blur` (reflect-101 borders),
  `copy_make_border` (reflect-101 padding) and `fast_atan2` (angle in
  degrees in `[0, 360)`).
- `dedvo.orb_pattern`: `pattern_points()` returns the 512 sampling offsets
  of the 256-test rotated BRIEF pattern as a `(512, 2)` array.
- `dedvo.orb_extractor`: `ORBExtractor(n_features, scale_factor, n_levels,
  ini_th_fast, min_th_fast)` builds a scale pyramid, spreads FAST corners
  over each level with a quadtree (`distribute_oct_tree`, `ExtractorNode`),
  orients them by intensity centroid (`ic_angle`) and computes 32-byte
  descriptors (`compute_orb_descriptor`, `compute_descriptors`). Calling the
  extractor on an 8-bit grayscale image returns `(keypoints, descriptors)`.
  The mask argument is accepted but not applied. `compute_keypoints_old`
  offers a fixed-grid detector as an alternative to the quadtree.
- `dedvo.conversion`: 4×4 rigid-pose helpers `pose_to_isometry`,
  `invert_pose` and `transform_points`.
- `dedvo.config`: `Config` with `CameraInfo` and `TrackerSettings`,
  read from a YAML settings file (keys such as `Camera.fx`,
  `Tracker.levels`, `extrinsicMatrix` written as `!!opencv-matrix`,
  `LoopClosure.f_vocabulary`) by `Config.from_file(path, fname)` or
  `load_config(path)`. `get_config()` returns one shared instance, created
  on first use. `Config.describe()` gives a text summary.
- `dedvo.frame`: `Frame` holds a float grayscale image pyramid, a pose
  `twc` (4×4, guarded by a lock) and a point cloud of `Point` objects,
  coloured from the image. Also `create_image_pyramid`, `pyr_down_mean`
  (2×2 mean downsampling), `to_gray_float` and `depth_color`.
- `dedvo.keyframe`: `Keyframe` samples the strongest-gradient point from
  every bucket of ten visible points, reports `visible_ratio` against
  another keyframe, extracts ORB features (`extract_orb`) and computes
  bag-of-words vectors (`compute_bow`).
- `dedvo.keyframe_window`: `KeyframeWindow(n)` keeps the `n` most recent
  keyframes.
- `dedvo.keyframe_db`: `KeyframeDB(vocabulary_size)` stores keyframes in
  order, links each to its predecessor (`parent`/`child`) and keeps an
  inverted file from word id to keyframes. `accumulated_points` draws the
  points of recent keyframes onto the newest image.
- `dedvo.loop_closing`: `LoopClosing` queues keyframes
  (`insert_keyframe`) and finds loop candidates by shared words and
  vocabulary scores (`detect_loop`, `detect_loop_candidate`,
  `run_without_thread`).

## What you supply

A camera model and a vocabulary are not part of the package:

- a camera object with `xyz_to_uv(xyz)` and
  `is_in_image(uv, border, scale=1.0)`;
- a vocabulary object with `transform(descriptors, levels_up)` returning
  `(bow_vector, feature_vector)` (the first a mapping from word id to
  weight) and `score(bow_a, bow_b)`.

`Frame` needs `num_levels` and `max_level`; pass them explicitly, or make
sure the shared configuration from `get_config` was loaded from a file.

## What it does not do

- There is no photometric tracker and no pose-graph optimisation: loop
  detection picks a loop keyframe but no loop correction is applied to
  the poses.
- No vocabulary file is read; `Config.bow_fname` only holds its path.
- Nothing is shown on screen. `Frame.render_points`,
  `Keyframe.render_points` and `KeyframeDB.accumulated_points` return
  float images for you to display or save.

## Installation

```
pip install .
```

## Example: ORB features

```python
import numpy as np
from dedvo.orb_extractor import ORBExtractor

image = (np.random.default_rng(0).random((240, 320)) * 255).astype(np.uint8)
extractor = ORBExtractor(1000, 1.2, 8, 20, 7)
keypoints, descriptors = extractor(image, None)
print(len(keypoints), descriptors.shape)  # descriptors are N x 32 bytes
```

## Example: image pyramid

```python
import numpy as np
from dedvo.frame import create_image_pyramid

gray = np.zeros((480, 640), dtype=np.float32)
pyramid = create_image_pyramid(gray, 4)
print([level.shape for level in pyramid])
# [(480, 640), (240, 320), (120, 160), (60, 80)]
```

## Example: poses

```python
import numpy as np
from dedvo.conversion import invert_pose, pose_to_isometry, transform_points

pose = pose_to_isometry(np.eye(3), [1.0, 2.0, 3.0])
print(transform_points(pose, [0.0, 0.0, 0.0]))  # [1. 2. 3.]
print(invert_pose(pose) @ pose)                  # identity
```

## Example: sliding keyframe window

```python
from dedvo.keyframe_window import KeyframeWindow

window = KeyframeWindow(3)
for kf in ["a", "b", "c", "d"]:
    window.add(kf)
print(list(window))  # ['b', 'c', 'd']
```

## Running the tests

```
pip install .[test]
pytest
```