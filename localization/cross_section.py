"""World model cross-section.

Slices the 3D meshes of the world entities with a horizontal plane at the
sensor height, producing the 2D line segments the sensor model renders.
The cross-section is rebuilt from the world snapshot on every cycle.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional, Tuple

import numpy as np

from .geometry import LineSegment, Mesh, Pose3D

logger = logging.getLogger(__name__)


@dataclass
class Entity:
    """World model entity. Entities without a shape do not block the sensor."""
    id: str
    pose: Pose3D = field(default_factory=Pose3D.identity)
    shape: Optional[Mesh] = None


@dataclass
class WorldSnapshot:
    """Read-only view of the world model for one cycle."""
    entities: List[Entity] = field(default_factory=list)

    def __iter__(self) -> Iterator[Entity]:
        return iter(self.entities)

    def __len__(self) -> int:
        return len(self.entities)

    def shaped(self) -> List[Entity]:
        """Entities that carry a mesh."""
        return [e for e in self.entities if e.shape is not None]


@dataclass
class CrossSection:
    """2D world-frame line segments at the plane height."""
    segments: np.ndarray = field(default_factory=lambda: np.zeros((0, 2, 2)))

    def __len__(self) -> int:
        return len(self.segments)

    @property
    def bounds(self) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        """(p_min, p_max) over all endpoints, or None when empty."""
        if len(self.segments) == 0:
            return None
        points = self.segments.reshape(-1, 2)
        return points.min(axis=0), points.max(axis=0)

    def line_segments(self) -> List[LineSegment]:
        return [LineSegment(float(p1[0]), float(p1[1]), float(p2[0]), float(p2[1])) for p1, p2 in self.segments]


def slice_mesh(vertices: np.ndarray, triangles: np.ndarray) -> np.ndarray:
    """Intersect a triangle mesh with the plane z = 0.

    Args:
        vertices: Nx3 vertex positions in the plane frame
        triangles: Mx3 vertex indices

    Returns:
        (K, 2, 2) array of segment endpoints (x, y)
    """
    if len(triangles) == 0:
        return np.zeros((0, 2, 2))

    corners = vertices[triangles]  # (M, 3, 3)
    above = corners[:, :, 2] > 0

    # Edges (0, 1), (1, 2), (2, 0)
    a = corners
    b = np.roll(corners, -1, axis=1)
    crosses = above != np.roll(above, -1, axis=1)  # (M, 3)

    # A triangle straddling the plane crosses it on exactly two edges
    hit = crosses.sum(axis=1) == 2
    if not np.any(hit):
        return np.zeros((0, 2, 2))

    a, b, crosses = a[hit], b[hit], crosses[hit]
    da = a[:, :, 2]
    db = b[:, :, 2]
    with np.errstate(divide="ignore", invalid="ignore"):
        t = np.where(crosses, da / (da - db), 0.0)
    points = a[:, :, :2] + t[:, :, None] * (b[:, :, :2] - a[:, :, :2])  # (K, 3, 2)

    # Pick the two crossing edges of every triangle, in edge order
    order = np.argsort(~crosses, axis=1, kind="stable")[:, :2]
    segments = np.take_along_axis(points, order[:, :, None], axis=1)

    # A triangle touching the plane at a single vertex yields no segment
    keep = np.any(segments[:, 0] != segments[:, 1], axis=1)
    return segments[keep]


@dataclass
class CrossSectionBuilder:
    """Build the cross-section of a world snapshot at a fixed height.

    Parameters:
        plane_height: Height of the slicing plane (sensor height) in meters
    """

    plane_height: float = 0.3

    @property
    def plane_pose(self) -> Pose3D:
        return Pose3D.from_xyz_rpy(0.0, 0.0, self.plane_height)

    def build(self, snapshot: WorldSnapshot | Iterable[Entity]) -> CrossSection:
        """Slice every shaped entity of the snapshot.

        Returns:
            CrossSection with world-frame segments
        """
        entities = snapshot.shaped() if isinstance(snapshot, WorldSnapshot) else [
            e for e in snapshot if e.shape is not None
        ]

        plane_inv = self.plane_pose.inverse()
        pieces = []
        for entity in entities:
            t_inv = plane_inv * entity.pose
            vertices = t_inv.apply(entity.shape.vertices)
            segments = slice_mesh(vertices, entity.shape.triangles)
            if len(segments) > 0:
                pieces.append(segments)

        if not pieces:
            return CrossSection()

        # The plane is level and centered on the world origin, so plane-frame
        # x/y coincide with world x/y.
        segments = np.concatenate(pieces)
        logger.debug(f"Cross-section: {len(entities)} shaped entities, {len(segments)} segments")
        return CrossSection(segments=segments)
