"""Simulated laser range finder.

The sensor model renders line segments (given in the sensor frame) into the
range readings an ideal laser scanner would report, and converts ranges back
into Cartesian points. Beam directions are evenly spaced over
[angle_min, angle_max].
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

import numpy as np

from .geometry import Pose2D

# Below this |det| a beam and a segment are treated as parallel
PARALLEL_EPS = 1e-12


@dataclass
class ScanSample:
    """Single laser scan: ordered ranges plus beam geometry."""
    ranges: np.ndarray
    range_min: float = 0.0
    range_max: float = 30.0
    angle_min: float = -math.pi
    angle_max: float = math.pi
    timestamp: float = 0.0

    def __post_init__(self):
        self.ranges = np.asarray(self.ranges, dtype=float)

    def __len__(self) -> int:
        return len(self.ranges)

    def to_dict(self) -> dict:
        return {
            "ranges": [float(r) if math.isfinite(r) else None for r in self.ranges],
            "range_min": self.range_min,
            "range_max": self.range_max,
            "angle_min": self.angle_min,
            "angle_max": self.angle_max,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'ScanSample':
        # null encodes a non-finite reading
        ranges = [float("inf") if r is None else float(r) for r in data["ranges"]]
        return cls(
            ranges=np.array(ranges),
            range_min=float(data.get("range_min", 0.0)),
            range_max=float(data["range_max"]),
            angle_min=float(data["angle_min"]),
            angle_max=float(data["angle_max"]),
            timestamp=float(data.get("timestamp", 0.0)),
        )


@dataclass(frozen=True)
class BeamConfig:
    """Beam geometry of the simulated range finder."""
    beam_count: int
    range_min: float = 0.0
    range_max: float = 30.0
    angle_min: float = -math.pi
    angle_max: float = math.pi

    @classmethod
    def from_scan(cls, scan: ScanSample, beam_count: Optional[int] = None) -> 'BeamConfig':
        return cls(
            beam_count=len(scan) if beam_count is None else beam_count,
            range_min=scan.range_min,
            range_max=scan.range_max,
            angle_min=scan.angle_min,
            angle_max=scan.angle_max,
        )


def sanitize_ranges(ranges: Sequence[float], range_max: float) -> np.ndarray:
    """Coerce invalid readings (non-finite or beyond range_max) to 0.

    Invalid beams stay in the scan and are scored as a reading of 0.
    """
    r = np.asarray(ranges, dtype=float).copy()
    with np.errstate(invalid="ignore"):
        invalid = ~np.isfinite(r) | (r > range_max)
    r[invalid] = 0.0
    return r


def subsample_stride(raw_count: int, max_beams: int) -> int:
    """Stride that keeps at most max_beams of raw_count beams."""
    if raw_count <= max_beams:
        return 1
    return math.ceil(raw_count / max_beams)


def subsample_scan(scan: ScanSample, max_beams: int = 100) -> Tuple[np.ndarray, int]:
    """Sanitize and subsample a scan.

    Returns:
        (ranges, stride) with len(ranges) <= max_beams
    """
    stride = subsample_stride(len(scan), max_beams)
    ranges = sanitize_ranges(scan.ranges, scan.range_max)
    return ranges[::stride], stride


@dataclass
class SensorModel:
    """Ray-casting model of a 2D laser range finder."""

    config: BeamConfig
    _angles: np.ndarray = field(init=False, repr=False)
    _directions: np.ndarray = field(init=False, repr=False)

    def __post_init__(self):
        cfg = self.config
        self._angles = np.linspace(cfg.angle_min, cfg.angle_max, cfg.beam_count)
        self._directions = np.stack([np.cos(self._angles), np.sin(self._angles)], axis=1)

    @property
    def beam_count(self) -> int:
        return self.config.beam_count

    @property
    def angles(self) -> np.ndarray:
        """Beam angles in the sensor frame (radians)."""
        return self._angles

    def render_ranges_batch(self, segments: np.ndarray) -> np.ndarray:
        """Render segments seen from several sensor frames.

        Args:
            segments: (C, S, 2, 2) segment endpoints, one set per sensor frame

        Returns:
            (C, beam_count) ranges, range_max where no segment is hit
        """
        segments = np.asarray(segments, dtype=float)
        n_frames = segments.shape[0]
        range_max = self.config.range_max

        if segments.shape[1] == 0 or self.beam_count == 0:
            return np.full((n_frames, self.beam_count), range_max)

        p1 = segments[:, None, :, 0, :]  # (C, 1, S, 2)
        e = segments[:, None, :, 1, :] - p1  # (C, 1, S, 2)
        d = self._directions[None, :, None, :]  # (1, B, 1, 2)

        # Solve t * d = p1 + u * e for ray distance t and segment parameter u
        denom = d[..., 0] * e[..., 1] - d[..., 1] * e[..., 0]  # (C, B, S)
        p1_cross_e = p1[..., 0] * e[..., 1] - p1[..., 1] * e[..., 0]  # (C, 1, S)
        p1_cross_d = p1[..., 0] * d[..., 1] - p1[..., 1] * d[..., 0]  # (C, B, S)

        valid = np.abs(denom) > PARALLEL_EPS
        safe = np.where(valid, denom, 1.0)
        t = p1_cross_e / safe
        u = p1_cross_d / safe

        hit = valid & (t > 0) & (u >= 0) & (u <= 1)
        distances = np.where(hit, t, np.inf)
        ranges = distances.min(axis=2)
        return np.minimum(ranges, range_max)

    def render_ranges(self, segments: np.ndarray) -> np.ndarray:
        """Render segments (S, 2, 2) given in the sensor frame.

        Returns:
            beam_count ranges in [0, range_max]
        """
        segments = np.asarray(segments, dtype=float).reshape(-1, 2, 2)
        return self.render_ranges_batch(segments[None])[0]

    def ranges_to_points(self, ranges: Sequence[float]) -> np.ndarray:
        """Convert ranges to Nx2 Cartesian points in the sensor frame."""
        r = np.asarray(ranges, dtype=float)
        if len(r) != self.beam_count:
            raise ValueError(f"Expected {self.beam_count} ranges, got {len(r)}")
        return r[:, None] * self._directions


def render_scan(
    model: SensorModel,
    segments: np.ndarray,
    pose: Pose2D,
    noise_stddev: float = 0.0,
    rng: Optional[np.random.Generator] = None
) -> np.ndarray:
    """Render world-frame segments as seen from a sensor at pose."""
    local = world_to_sensor(segments, np.array([[pose.x, pose.y, pose.theta]]))[0]
    ranges = model.render_ranges(local)
    if noise_stddev > 0:
        rng = rng or np.random.default_rng()
        ranges = ranges + rng.normal(0, noise_stddev, size=ranges.shape)
    return ranges


def world_to_sensor(segments: np.ndarray, poses: np.ndarray) -> np.ndarray:
    """Transform world segments into the frames of several sensor poses.

    Args:
        segments: (S, 2, 2) world-frame segments
        poses: (C, 3) array of (x, y, theta)

    Returns:
        (C, S, 2, 2) segments, one set per pose frame
    """
    x, y, theta = poses[:, 0], poses[:, 1], poses[:, 2]
    c, s = np.cos(theta), np.sin(theta)

    # Inverse pose: p_sensor = R(theta)^T (p_world - t)
    dx = segments[None, :, :, 0] - x[:, None, None]
    dy = segments[None, :, :, 1] - y[:, None, None]
    c = c[:, None, None]
    s = s[:, None, None]
    return np.stack([c * dx + s * dy, -s * dx + c * dy], axis=-1)
