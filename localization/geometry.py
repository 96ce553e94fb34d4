"""Geometric value types shared by the localization core.

- Pose2D: planar pose (x, y, heading)
- Pose3D: rigid 3D transform for world entities
- LineSegment: 2D segment of a cross-section
- Mesh: triangle mesh of a world entity
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Tuple

import numpy as np
from scipy.spatial.transform import Rotation


@dataclass
class Pose2D:
    """2D pose (position + orientation)."""
    x: float = 0.0
    y: float = 0.0
    theta: float = 0.0  # radians, CCW from +X axis

    def to_matrix(self) -> np.ndarray:
        """Convert to 3x3 homogeneous transformation matrix."""
        c, s = np.cos(self.theta), np.sin(self.theta)
        return np.array([
            [c, -s, self.x],
            [s,  c, self.y],
            [0,  0, 1]
        ])

    @classmethod
    def from_matrix(cls, T: np.ndarray) -> 'Pose2D':
        """Create from 3x3 homogeneous transformation matrix."""
        theta = np.arctan2(T[1, 0], T[0, 0])
        return cls(x=float(T[0, 2]), y=float(T[1, 2]), theta=float(theta))

    def compose(self, other: 'Pose2D') -> 'Pose2D':
        """Compose two poses: self * other."""
        T = self.to_matrix() @ other.to_matrix()
        return Pose2D.from_matrix(T)

    def inverse(self) -> 'Pose2D':
        """Return the inverse pose."""
        c, s = math.cos(self.theta), math.sin(self.theta)
        return Pose2D(
            x=-(c * self.x + s * self.y),
            y=s * self.x - c * self.y,
            theta=-self.theta,
        )

    def to_tuple(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.theta)


def wrap_angle(angle: float) -> float:
    """Wrap an angle to [-pi, pi)."""
    return (angle + math.pi) % (2 * math.pi) - math.pi


@dataclass
class Pose3D:
    """Rigid 3D transform: p_parent = R @ p_child + t."""
    translation: np.ndarray = field(default_factory=lambda: np.zeros(3))
    rotation: Rotation = field(default_factory=Rotation.identity)

    @classmethod
    def identity(cls) -> 'Pose3D':
        return cls()

    @classmethod
    def from_xyz_rpy(
        cls,
        x: float = 0.0,
        y: float = 0.0,
        z: float = 0.0,
        roll: float = 0.0,
        pitch: float = 0.0,
        yaw: float = 0.0
    ) -> 'Pose3D':
        """Create from position and roll/pitch/yaw (radians, fixed XYZ axes)."""
        return cls(
            translation=np.array([x, y, z], dtype=float),
            rotation=Rotation.from_euler("xyz", [roll, pitch, yaw]),
        )

    def compose(self, other: 'Pose3D') -> 'Pose3D':
        """Compose two poses: self * other."""
        return Pose3D(
            translation=self.rotation.apply(other.translation) + self.translation,
            rotation=self.rotation * other.rotation,
        )

    def __mul__(self, other: 'Pose3D') -> 'Pose3D':
        return self.compose(other)

    def inverse(self) -> 'Pose3D':
        """Return the inverse pose."""
        r_inv = self.rotation.inv()
        return Pose3D(translation=-r_inv.apply(self.translation), rotation=r_inv)

    def apply(self, points: np.ndarray) -> np.ndarray:
        """Transform an Nx3 array of points from child to parent frame."""
        if len(points) == 0:
            return np.zeros((0, 3))
        return self.rotation.apply(points) + self.translation

    def to_dict(self) -> dict:
        roll, pitch, yaw = self.rotation.as_euler("xyz")
        x, y, z = self.translation
        return {
            "x": float(x), "y": float(y), "z": float(z),
            "roll": float(roll), "pitch": float(pitch), "yaw": float(yaw),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Pose3D':
        return cls.from_xyz_rpy(
            float(data.get("x", 0.0)),
            float(data.get("y", 0.0)),
            float(data.get("z", 0.0)),
            roll=float(data.get("roll", 0.0)),
            pitch=float(data.get("pitch", 0.0)),
            yaw=float(data.get("yaw", 0.0)),
        )


@dataclass
class LineSegment:
    """2D line segment."""
    x1: float
    y1: float
    x2: float
    y2: float

    def to_tuple(self) -> Tuple[float, float, float, float]:
        """Return as (x1, y1, x2, y2) tuple."""
        return (self.x1, self.y1, self.x2, self.y2)


@dataclass
class Mesh:
    """Triangle mesh.

    Parameters:
        vertices: Nx3 vertex positions in the entity frame
        triangles: Mx3 vertex indices
    """
    vertices: np.ndarray
    triangles: np.ndarray

    def __post_init__(self):
        self.vertices = np.asarray(self.vertices, dtype=float).reshape(-1, 3)
        self.triangles = np.asarray(self.triangles, dtype=int).reshape(-1, 3)

    @classmethod
    def box(cls, size_x: float, size_y: float, size_z: float) -> 'Mesh':
        """Closed axis-aligned box centered on the origin."""
        hx, hy, hz = size_x / 2, size_y / 2, size_z / 2
        vertices = np.array([
            [-hx, -hy, -hz], [hx, -hy, -hz], [hx, hy, -hz], [-hx, hy, -hz],
            [-hx, -hy,  hz], [hx, -hy,  hz], [hx, hy,  hz], [-hx, hy,  hz],
        ])
        triangles = np.array([
            [0, 2, 1], [0, 3, 2],  # bottom
            [4, 5, 6], [4, 6, 7],  # top
            [0, 1, 5], [0, 5, 4],  # -y
            [1, 2, 6], [1, 6, 5],  # +x
            [2, 3, 7], [2, 7, 6],  # +y
            [3, 0, 4], [3, 4, 7],  # -x
        ])
        return cls(vertices=vertices, triangles=triangles)

    def to_dict(self) -> dict:
        return {
            "vertices": self.vertices.tolist(),
            "triangles": self.triangles.tolist(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Mesh':
        return cls(vertices=data["vertices"], triangles=data["triangles"])
