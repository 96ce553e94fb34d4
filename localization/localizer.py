"""Scan-matching localizer.

This module sequences one localization cycle:
1. Take the latest scan and odometry from their single-slot mailboxes
2. Predict the sensor pose from odometry
3. Slice the world model into a 2D cross-section
4. Sanitize and subsample the scan
5. Search the candidate poses for the best match
6. Emit the best pose estimate with diagnostics

Usage:
    python -m localization.localizer --session sessions/my_session --out artifacts/output

Cycles never overlap; transport callbacks only write to the mailboxes.
"""
from __future__ import annotations

import argparse
import csv
import json
import logging
import math
import sys
import threading
import time
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Generic, List, Optional, TypeVar

import numpy as np

from .config import LocalizerConfig, load_config
from .cross_section import CrossSection, CrossSectionBuilder, WorldSnapshot
from .geometry import Pose2D, wrap_angle
from .motion import MotionIntegrator
from .pose_search import PoseSearchEngine
from .sensor_model import BeamConfig, ScanSample, SensorModel, subsample_scan
from .session import Session

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Mailbox(Generic[T]):
    """Single-slot buffer: a newer message overwrites an unconsumed one."""

    def __init__(self):
        self._lock = threading.Lock()
        self._message: Optional[T] = None
        self._overwritten = 0

    def put(self, message: T) -> None:
        with self._lock:
            if self._message is not None:
                self._overwritten += 1
            self._message = message

    def take(self) -> Optional[T]:
        """Return the pending message, if any, and empty the slot."""
        with self._lock:
            message, self._message = self._message, None
            return message

    @property
    def overwritten(self) -> int:
        """Number of messages dropped unconsumed."""
        return self._overwritten


@dataclass
class Diagnostics:
    """Per-cycle search statistics."""
    candidate_count: int = 0
    segment_count: int = 0
    beam_count: int = 0
    elapsed_ms: float = 0.0
    best_score: Optional[float] = None
    mode: str = ""

    @property
    def time_per_candidate_ms(self) -> float:
        if self.candidate_count == 0:
            return 0.0
        return self.elapsed_ms / self.candidate_count


@dataclass
class LocalizationEstimate:
    """Process-lifetime localization state."""
    best_pose: Pose2D = field(default_factory=Pose2D)
    initialized: bool = False
    previous_odometry: Optional[Pose2D] = None
    diagnostics: Diagnostics = field(default_factory=Diagnostics)


@dataclass
class BestPoseEstimate:
    """Estimate emitted once per cycle."""
    pose: Pose2D
    initialized: bool
    sensor_height: float
    diagnostics: Diagnostics

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        d = {
            "pose": {"x": float(self.pose.x), "y": float(self.pose.y), "theta": float(self.pose.theta)},
            "initialized": bool(self.initialized),
            "sensor_height": float(self.sensor_height),
            "diagnostics": asdict(self.diagnostics),
        }
        d["diagnostics"]["time_per_candidate_ms"] = self.diagnostics.time_per_candidate_ms
        return d


class Localizer:
    """Localize a laser scanner against a world model, one cycle at a time.

    Raises:
        ConfigurationError: if the configuration has no scan source
    """

    def __init__(self, config: Optional[LocalizerConfig] = None):
        self.config = config or LocalizerConfig()
        self.config.validate()

        self.scan_mailbox: Mailbox[ScanSample] = Mailbox()
        self.odom_mailbox: Optional[Mailbox[Pose2D]] = None
        if self.config.sources.odom_topic:
            self.odom_mailbox = Mailbox()

        self.cross_section_builder = CrossSectionBuilder(plane_height=self.config.sensor.plane_height)
        self.motion = MotionIntegrator()
        self.search_engine = PoseSearchEngine(
            global_search=self.config.global_search,
            local_search=self.config.local_search,
            scoring=self.config.scoring,
        )

        self.estimate = LocalizationEstimate()
        self.sensor_model: Optional[SensorModel] = None
        self.cycle_count = 0

        # Kept for debug consumers
        self.last_cross_section: Optional[CrossSection] = None
        self.last_scan_points: Optional[np.ndarray] = None

        logger.info(
            f"Localizer configured: scan={self.config.sources.scan_topic}, "
            f"odom={self.config.sources.odom_topic or 'disabled'}"
        )

    def on_scan(self, scan: ScanSample) -> None:
        """Transport callback for laser scans."""
        self.scan_mailbox.put(scan)

    def on_odometry(self, pose: Pose2D) -> None:
        """Transport callback for absolute odometry poses."""
        if self.odom_mailbox is None:
            logger.warning("Odometry received but no odometry source is configured; ignoring")
            return
        self.odom_mailbox.put(pose)

    def _update_sensor_model(self, scan: ScanSample, beam_count: int) -> SensorModel:
        """Rebuild the beam configuration when the effective beam count changes."""
        if self.sensor_model is None or self.sensor_model.beam_count != beam_count:
            self.sensor_model = SensorModel(BeamConfig.from_scan(scan, beam_count))
            logger.debug(f"Sensor model reconfigured for {beam_count} beams")
        return self.sensor_model

    def process(self, world: WorldSnapshot) -> Optional[BestPoseEstimate]:
        """Run one localization cycle against the current world snapshot.

        Returns:
            The updated estimate, or None when no scan was available
        """
        scan = self.scan_mailbox.take()
        odometry = self.odom_mailbox.take() if self.odom_mailbox is not None else None

        if scan is None:
            logger.debug("No scan available; skipping cycle")
            return None

        start_time = time.perf_counter()
        self.cycle_count += 1

        if odometry is not None:
            self.motion.integrate(self.estimate, odometry)

        cross_section = self.cross_section_builder.build(world)

        sensor_ranges, stride = subsample_scan(scan, self.config.scoring.max_beams)
        model = self._update_sensor_model(scan, len(sensor_ranges))

        result = self.search_engine.update(self.estimate, cross_section.segments, sensor_ranges, model)

        diagnostics = Diagnostics(
            candidate_count=result.candidate_count,
            segment_count=len(cross_section),
            beam_count=len(sensor_ranges),
            elapsed_ms=(time.perf_counter() - start_time) * 1000.0,
            best_score=result.best.score if result.best is not None else None,
            mode=result.mode,
        )
        self.estimate.diagnostics = diagnostics
        self.last_cross_section = cross_section
        self.last_scan_points = model.ranges_to_points(sensor_ranges)

        pose = self.estimate.best_pose
        logger.info(
            f"Cycle {self.cycle_count} ({diagnostics.mode}): "
            f"pose=({pose.x:.3f}, {pose.y:.3f}, {math.degrees(pose.theta):.1f}deg) "
            f"score={diagnostics.best_score} candidates={diagnostics.candidate_count} "
            f"segments={diagnostics.segment_count} beams={diagnostics.beam_count} "
            f"stride={stride} time={diagnostics.elapsed_ms:.1f}ms"
        )

        return BestPoseEstimate(
            pose=pose,
            initialized=self.estimate.initialized,
            sensor_height=self.config.sensor.plane_height,
            diagnostics=diagnostics,
        )


@dataclass
class ReplayResult:
    """Result of replaying a recorded session."""
    estimates: List[BestPoseEstimate] = field(default_factory=list)
    position_errors: List[float] = field(default_factory=list)
    heading_errors: List[float] = field(default_factory=list)
    processing_time_sec: float = 0.0

    def to_dict(self) -> dict:
        d = {
            "cycles": len(self.estimates),
            "initialized": bool(self.estimates and self.estimates[-1].initialized),
            "processing_time_sec": self.processing_time_sec,
            "final_estimate": self.estimates[-1].to_dict() if self.estimates else None,
        }
        if self.position_errors:
            d["mean_position_error_m"] = float(np.mean(self.position_errors))
            d["max_position_error_m"] = float(np.max(self.position_errors))
            d["mean_heading_error_deg"] = float(np.degrees(np.mean(self.heading_errors)))
        return d


def replay_session(session: Session, localizer: Localizer) -> ReplayResult:
    """Feed a recorded session through the localizer, one cycle per scan."""
    start_time = time.time()
    result = ReplayResult()

    for i, scan in enumerate(session.scans):
        localizer.on_scan(scan)
        odometry = session.odometry_at(i)
        if odometry is not None and localizer.odom_mailbox is not None:
            localizer.on_odometry(odometry)

        estimate = localizer.process(session.world)
        if estimate is None:
            continue
        result.estimates.append(estimate)

        if i < len(session.ground_truth):
            truth = session.ground_truth[i]
            result.position_errors.append(math.hypot(estimate.pose.x - truth.x, estimate.pose.y - truth.y))
            result.heading_errors.append(abs(wrap_angle(estimate.pose.theta - truth.theta)))

    result.processing_time_sec = time.time() - start_time
    return result


def write_results(result: ReplayResult, output_dir: Path | str) -> None:
    """Write poses.csv and summary.json."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    with open(output_dir / "poses.csv", "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow([
            "cycle", "x", "y", "theta_rad", "theta_deg", "initialized",
            "score", "candidates", "segments", "elapsed_ms"
        ])
        for i, est in enumerate(result.estimates):
            d = est.diagnostics
            writer.writerow([
                i,
                f"{est.pose.x:.6f}",
                f"{est.pose.y:.6f}",
                f"{est.pose.theta:.6f}",
                f"{math.degrees(est.pose.theta):.2f}",
                int(est.initialized),
                f"{d.best_score:.6f}" if d.best_score is not None else "",
                d.candidate_count,
                d.segment_count,
                f"{d.elapsed_ms:.2f}",
            ])

    with open(output_dir / "summary.json", "w") as f:
        json.dump(result.to_dict(), f, indent=2)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Replay a recorded session through the scan-matching localizer"
    )
    parser.add_argument(
        "--session",
        required=True,
        help="Path to session directory"
    )
    parser.add_argument(
        "--out",
        required=True,
        help="Path to output directory"
    )
    parser.add_argument(
        "--config",
        help="Path to localizer config JSON"
    )
    parser.add_argument(
        "--workers",
        type=int,
        help="Threads used for candidate scoring"
    )
    parser.add_argument(
        "--dxf",
        action="store_true",
        help="Also write debug.dxf with the cross-section and estimates"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    try:
        session = Session.load(args.session)
    except (OSError, ValueError, KeyError) as e:
        print(f"Failed to load session {args.session}: {e}", file=sys.stderr)
        return 1

    config = load_config(args.config)
    # The recorded streams are the sources when none are configured
    if not config.sources.scan_topic:
        config.sources.scan_topic = "scans.json"
    if not config.sources.odom_topic and session.odometry:
        config.sources.odom_topic = "odometry.json"
    if args.workers:
        config.scoring.workers = args.workers

    localizer = Localizer(config)

    print(f"Replaying {len(session.scans)} scans from {args.session}...")
    result = replay_session(session, localizer)
    write_results(result, args.out)

    if args.dxf and localizer.last_cross_section is not None:
        from .dxf_exporter import export_debug_view
        export_debug_view(
            cross_section=localizer.last_cross_section,
            estimate=result.estimates[-1],
            scan_points=localizer.last_scan_points,
            trail=[e.pose for e in result.estimates],
            output_path=Path(args.out) / "debug.dxf",
        )

    summary = result.to_dict()
    print("\n" + "=" * 60)
    print("LOCALIZATION SUMMARY")
    print("=" * 60)
    print(f"Cycles: {summary['cycles']}")
    print(f"Initialized: {summary['initialized']}")
    if summary["final_estimate"]:
        pose = summary["final_estimate"]["pose"]
        print(f"Final pose: x={pose['x']:.3f} y={pose['y']:.3f} theta={math.degrees(pose['theta']):.1f}deg")
    if "mean_position_error_m" in summary:
        print(f"Mean position error: {summary['mean_position_error_m']:.3f} m")
        print(f"Mean heading error: {summary['mean_heading_error_deg']:.2f} deg")
    print(f"Time: {result.processing_time_sec:.2f}s")

    return 0 if summary["initialized"] else 1


if __name__ == "__main__":
    sys.exit(main())
