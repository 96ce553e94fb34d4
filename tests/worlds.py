"""World and scan builders for tests.

Usage:
    from tests.worlds import box_entity, truth_scan
    world = WorldSnapshot(entities=[box_entity("square", 0, 0, 1, 1)])
    ranges = truth_scan(world, beams, Pose2D(3, 0, math.pi))
"""

import numpy as np

from localization.cross_section import CrossSectionBuilder, Entity, WorldSnapshot
from localization.geometry import Mesh, Pose2D, Pose3D
from localization.sensor_model import BeamConfig, SensorModel, render_scan


def box_entity(entity_id: str, cx: float, cy: float, size_x: float, size_y: float,
               height: float = 2.0) -> Entity:
    """Box standing on the floor, centered on (cx, cy)."""
    return Entity(
        id=entity_id,
        pose=Pose3D.from_xyz_rpy(cx, cy, height / 2),
        shape=Mesh.box(size_x, size_y, height),
    )


def truth_scan(world: WorldSnapshot, beams: BeamConfig, pose: Pose2D,
               plane_height: float = 0.3) -> np.ndarray:
    """Noise-free ranges of world seen from pose."""
    segments = CrossSectionBuilder(plane_height=plane_height).build(world).segments
    return render_scan(SensorModel(beams), segments, pose)
