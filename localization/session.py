"""Recorded localization sessions.

A session directory holds:
- world.json: world entities (pose + optional triangle mesh)
- scans.json: laser scans in arrival order
- odometry.json: optional odometry poses, one per scan (null = no reading)
- ground_truth.json: optional true sensor poses, one per scan
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .cross_section import Entity, WorldSnapshot
from .geometry import Mesh, Pose2D, Pose3D
from .sensor_model import ScanSample


def pose2d_to_dict(pose: Pose2D) -> dict:
    return {"x": pose.x, "y": pose.y, "theta": pose.theta}


def pose2d_from_dict(data: dict) -> Pose2D:
    return Pose2D(x=float(data["x"]), y=float(data["y"]), theta=float(data["theta"]))


def world_to_dict(snapshot: WorldSnapshot) -> dict:
    return {
        "entities": [
            {
                "id": e.id,
                "pose": e.pose.to_dict(),
                "shape": e.shape.to_dict() if e.shape is not None else None,
            }
            for e in snapshot
        ]
    }


def world_from_dict(data: dict) -> WorldSnapshot:
    entities = []
    for item in data.get("entities", []):
        shape = item.get("shape")
        entities.append(Entity(
            id=str(item["id"]),
            pose=Pose3D.from_dict(item.get("pose", {})),
            shape=Mesh.from_dict(shape) if shape else None,
        ))
    return WorldSnapshot(entities=entities)


@dataclass
class Session:
    """World, scan stream and odometry stream of one recording."""
    world: WorldSnapshot = field(default_factory=WorldSnapshot)
    scans: List[ScanSample] = field(default_factory=list)
    odometry: List[Optional[Pose2D]] = field(default_factory=list)
    ground_truth: List[Pose2D] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)

    def odometry_at(self, index: int) -> Optional[Pose2D]:
        if index < len(self.odometry):
            return self.odometry[index]
        return None

    @classmethod
    def load(cls, session_dir: Path | str) -> 'Session':
        """Load a session directory.

        Raises:
            FileNotFoundError: if world.json or scans.json is missing
        """
        session_dir = Path(session_dir)

        with open(session_dir / "world.json") as f:
            world = world_from_dict(json.load(f))

        with open(session_dir / "scans.json") as f:
            scans = [ScanSample.from_dict(s) for s in json.load(f)["scans"]]

        odometry: List[Optional[Pose2D]] = []
        odom_file = session_dir / "odometry.json"
        if odom_file.exists():
            with open(odom_file) as f:
                odometry = [pose2d_from_dict(p) if p else None for p in json.load(f)["poses"]]

        ground_truth: List[Pose2D] = []
        truth_file = session_dir / "ground_truth.json"
        if truth_file.exists():
            with open(truth_file) as f:
                ground_truth = [pose2d_from_dict(p) for p in json.load(f)["poses"]]

        metadata = {}
        metadata_file = session_dir / "metadata.json"
        if metadata_file.exists():
            with open(metadata_file) as f:
                metadata = json.load(f)

        return cls(
            world=world,
            scans=scans,
            odometry=odometry,
            ground_truth=ground_truth,
            metadata=metadata,
        )

    def save(self, session_dir: Path | str) -> None:
        """Write the session files."""
        session_dir = Path(session_dir)
        session_dir.mkdir(parents=True, exist_ok=True)

        with open(session_dir / "world.json", "w") as f:
            json.dump(world_to_dict(self.world), f)

        with open(session_dir / "scans.json", "w") as f:
            json.dump({"scans": [s.to_dict() for s in self.scans]}, f)

        if self.odometry:
            with open(session_dir / "odometry.json", "w") as f:
                json.dump({
                    "poses": [pose2d_to_dict(p) if p is not None else None for p in self.odometry]
                }, f, indent=2)

        if self.ground_truth:
            with open(session_dir / "ground_truth.json", "w") as f:
                json.dump({"poses": [pose2d_to_dict(p) for p in self.ground_truth]}, f, indent=2)

        if self.metadata:
            with open(session_dir / "metadata.json", "w") as f:
                json.dump(self.metadata, f, indent=2)
