"""Synthetic session generator for Scanloc.

This module generates synthetic localization sessions for development,
testing, and CI purposes. A session holds a 3D world model, the laser scans
a sensor driving through it would record, and the matching odometry.

Features:
- Configurable room geometry (walls, obstacles) built from box meshes
- Shapeless entities that must not block the laser
- Linear or circular sensor trajectories
- Configurable range noise and dropouts (reported as invalid readings)
- Odometry with drift, expressed in its own frame

Usage:
    python -m simulation.generate_synthetic --out sessions/synthetic --steps 10
"""
from __future__ import annotations

import argparse
import json
import math
import random
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple, Dict, Any

import numpy as np

from localization.cross_section import CrossSectionBuilder, Entity, WorldSnapshot
from localization.geometry import Mesh, Pose2D, Pose3D
from localization.sensor_model import BeamConfig, ScanSample, SensorModel, render_scan
from localization.session import Session


@dataclass
class Room:
    """Room geometry for simulation."""
    entities: List[Entity] = field(default_factory=list)
    wall_height: float = 2.0  # meters
    wall_thickness: float = 0.1  # meters

    def add_wall(self, x1: float, y1: float, x2: float, y2: float) -> None:
        """Add a wall between two floor points."""
        length = math.hypot(x2 - x1, y2 - y1)
        yaw = math.atan2(y2 - y1, x2 - x1)
        self.entities.append(Entity(
            id=f"wall_{len(self.entities)}",
            pose=Pose3D.from_xyz_rpy((x1 + x2) / 2, (y1 + y2) / 2, self.wall_height / 2, yaw=yaw),
            shape=Mesh.box(length, self.wall_thickness, self.wall_height),
        ))

    def add_obstacle(self, cx: float, cy: float, size: float = 1.0, height: float = 1.0) -> None:
        """Add a square obstacle (pillar/furniture) standing on the floor."""
        self.entities.append(Entity(
            id=f"obstacle_{len(self.entities)}",
            pose=Pose3D.from_xyz_rpy(cx, cy, height / 2),
            shape=Mesh.box(size, size, height),
        ))

    def add_marker(self, x: float, y: float) -> None:
        """Add a shapeless entity (e.g. a waypoint)."""
        self.entities.append(Entity(
            id=f"marker_{len(self.entities)}",
            pose=Pose3D.from_xyz_rpy(x, y, 0.0),
        ))

    @classmethod
    def rectangle(cls, width: float = 8.0, height: float = 6.0, center: Tuple[float, float] = (0, 0)) -> 'Room':
        """Create a rectangular room."""
        cx, cy = center
        hw, hh = width / 2, height / 2

        room = cls()
        room.add_wall(cx - hw, cy - hh, cx + hw, cy - hh)  # Bottom
        room.add_wall(cx + hw, cy - hh, cx + hw, cy + hh)  # Right
        room.add_wall(cx + hw, cy + hh, cx - hw, cy + hh)  # Top
        room.add_wall(cx - hw, cy + hh, cx - hw, cy - hh)  # Left
        return room

    @classmethod
    def l_shaped(cls) -> 'Room':
        """Create an L-shaped room."""
        room = cls()
        room.add_wall(-4, -3, 4, -3)    # Bottom
        room.add_wall(4, -3, 4, 0)      # Right bottom
        room.add_wall(4, 0, 0, 0)       # Inner horizontal
        room.add_wall(0, 0, 0, 3)       # Inner vertical
        room.add_wall(0, 3, -4, 3)      # Top
        room.add_wall(-4, 3, -4, -3)    # Left
        return room

    def snapshot(self) -> WorldSnapshot:
        return WorldSnapshot(entities=list(self.entities))


@dataclass
class LidarConfig:
    """Laser simulation parameters."""
    beam_count: int = 360
    range_min: float = 0.1  # meters
    range_max: float = 12.0  # meters
    angle_min: float = -math.pi
    angle_max: float = math.pi
    range_noise_stddev: float = 0.01  # meters
    dropout_rate: float = 0.02  # probability of an invalid (inf) reading
    scan_period: float = 0.1  # seconds


@dataclass
class OdometryConfig:
    """Odometry simulation parameters."""
    translation_noise_stddev: float = 0.005  # meters per step
    rotation_noise_stddev: float = 0.002  # radians per step
    # Pose of the world frame in the odometry frame
    frame_offset: Tuple[float, float, float] = (0.5, -0.5, 0.1)


@dataclass
class SyntheticSession:
    """Generator for synthetic sessions."""

    room: Room = field(default_factory=Room.rectangle)
    poses: List[Pose2D] = field(default_factory=list)
    lidar_config: LidarConfig = field(default_factory=LidarConfig)
    odometry_config: OdometryConfig = field(default_factory=OdometryConfig)
    plane_height: float = 0.3  # meters
    seed: Optional[int] = None

    def __post_init__(self):
        self._rng = np.random.default_rng(self.seed)
        self._random = random.Random(self.seed)

    def place_poses_linear(self, n_steps: int = 10, start: Tuple[float, float] = (-2.0, -1.0),
                           step: float = 0.15, heading: float = 0.3) -> None:
        """Drive in a straight line with a slow turn."""
        self.poses.clear()
        x, y = start
        for i in range(n_steps):
            theta = heading + 0.03 * i
            self.poses.append(Pose2D(x=x, y=y, theta=theta))
            x += step * math.cos(theta)
            y += step * math.sin(theta)

    def place_poses_circular(self, n_steps: int = 12, radius: float = 1.5) -> None:
        """Drive on a circle around the room center, facing along the path."""
        self.poses.clear()
        for i in range(n_steps):
            angle = 2 * math.pi * i / max(n_steps, 1) * 0.25
            x = radius * math.cos(angle)
            y = radius * math.sin(angle)
            self.poses.append(Pose2D(x=x, y=y, theta=angle + math.pi / 2))

    def sensor_model(self) -> SensorModel:
        cfg = self.lidar_config
        return SensorModel(BeamConfig(
            beam_count=cfg.beam_count,
            range_min=cfg.range_min,
            range_max=cfg.range_max,
            angle_min=cfg.angle_min,
            angle_max=cfg.angle_max,
        ))

    def generate_scan(self, pose: Pose2D, timestamp: float = 0.0) -> ScanSample:
        """Generate a laser scan from a sensor pose."""
        cfg = self.lidar_config
        segments = CrossSectionBuilder(plane_height=self.plane_height).build(self.room.snapshot()).segments
        ranges = render_scan(self.sensor_model(), segments, pose)

        # Noise on hits only; misses keep reading range_max
        hits = ranges < cfg.range_max
        if cfg.range_noise_stddev > 0:
            noise = self._rng.normal(0, cfg.range_noise_stddev, size=ranges.shape)
            ranges = np.where(hits, np.clip(ranges + noise, 0.0, cfg.range_max), ranges)

        dropouts = self._rng.random(ranges.shape) < cfg.dropout_rate
        ranges = np.where(dropouts, np.inf, ranges)

        return ScanSample(
            ranges=ranges,
            range_min=cfg.range_min,
            range_max=cfg.range_max,
            angle_min=cfg.angle_min,
            angle_max=cfg.angle_max,
            timestamp=timestamp,
        )

    def generate_odometry(self) -> List[Pose2D]:
        """Odometry poses with accumulated drift, in the odometry frame."""
        cfg = self.odometry_config
        offset = Pose2D(*cfg.frame_offset)
        odometry: List[Pose2D] = []

        current = offset.compose(self.poses[0]) if self.poses else offset
        for i, pose in enumerate(self.poses):
            if i > 0:
                step = self.poses[i - 1].inverse().compose(pose)
                noisy = Pose2D(
                    x=step.x + self._random.gauss(0, cfg.translation_noise_stddev),
                    y=step.y + self._random.gauss(0, cfg.translation_noise_stddev),
                    theta=step.theta + self._random.gauss(0, cfg.rotation_noise_stddev),
                )
                current = current.compose(noisy)
            odometry.append(current)
        return odometry

    def build(self) -> Session:
        """Build the session in memory."""
        if not self.poses:
            self.place_poses_linear()

        scans = [
            self.generate_scan(pose, timestamp=i * self.lidar_config.scan_period)
            for i, pose in enumerate(self.poses)
        ]

        metadata = {
            "project": "scanloc-synthetic",
            "created": datetime.now(timezone.utc).isoformat(),
            "steps": len(self.poses),
            "entities": len(self.room.entities),
            "plane_height": self.plane_height,
            "lidar_config": asdict(self.lidar_config),
            "odometry_config": asdict(self.odometry_config),
        }

        return Session(
            world=self.room.snapshot(),
            scans=scans,
            odometry=list(self.generate_odometry()),
            ground_truth=list(self.poses),
            metadata=metadata,
        )

    def generate_session(self, output_dir: Path | str) -> Dict[str, Any]:
        """Generate a complete session.

        Args:
            output_dir: Output directory path

        Returns:
            Summary dictionary
        """
        output_dir = Path(output_dir)
        session = self.build()
        session.save(output_dir)

        summary = {
            "status": "ok",
            "session_dir": str(output_dir),
            "scans": len(session.scans),
            "entities": len(session.world),
        }

        print(json.dumps(summary))
        return summary


def make_session(outdir: str, n_steps: int = 5, beam_count: int = 360, seed: Optional[int] = None) -> Session:
    """Generate a small session in a rectangular room with one obstacle."""
    room = Room.rectangle()
    room.add_obstacle(1.5, 1.0, size=0.8)
    room.add_marker(0.0, 0.0)

    generator = SyntheticSession(room=room, seed=seed)
    generator.lidar_config.beam_count = beam_count
    generator.place_poses_linear(n_steps)
    generator.generate_session(outdir)
    return Session.load(outdir)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Generate synthetic Scanloc session for testing"
    )
    parser.add_argument(
        "--out",
        required=True,
        help="Output session directory"
    )
    parser.add_argument(
        "--steps",
        type=int,
        default=10,
        help="Number of scans (default: 10)"
    )
    parser.add_argument(
        "--room",
        choices=["rectangle", "l-shaped"],
        default="rectangle",
        help="Room shape (default: rectangle)"
    )
    parser.add_argument(
        "--trajectory",
        choices=["linear", "circular"],
        default="linear",
        help="Sensor trajectory (default: linear)"
    )
    parser.add_argument(
        "--beams",
        type=int,
        default=360,
        help="Beams per scan (default: 360)"
    )
    parser.add_argument(
        "--noise",
        type=float,
        default=0.01,
        help="Range noise stddev in meters (default: 0.01)"
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Random seed"
    )

    args = parser.parse_args()

    room = Room.l_shaped() if args.room == "l-shaped" else Room.rectangle()
    room.add_obstacle(-2.0, 1.5, size=0.6)

    session = SyntheticSession(room=room, seed=args.seed)
    session.lidar_config.beam_count = args.beams
    session.lidar_config.range_noise_stddev = args.noise

    if args.trajectory == "circular":
        session.place_poses_circular(args.steps)
    else:
        session.place_poses_linear(args.steps)

    session.generate_session(args.out)
