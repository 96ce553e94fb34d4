"""DXF debug view for the localizer.

This module draws what the localizer saw in one cycle, for inspection in CAD
software or any DXF viewer. It only consumes the localizer's output.

Layers:
- CROSS_SECTION: World cross-section line segments
- SCAN_POINTS: Scan points placed at the best pose
- POSES: Pose trail and best pose marker
- ANNOTATIONS: Cross-section bounding box and status text
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

import ezdxf
import numpy as np

from .cross_section import CrossSection
from .geometry import Pose2D
from .localizer import BestPoseEstimate


# Layer configuration
LAYER_CROSS_SECTION = "CROSS_SECTION"
LAYER_SCAN_POINTS = "SCAN_POINTS"
LAYER_POSES = "POSES"
LAYER_ANNOTATIONS = "ANNOTATIONS"

# Colors (AutoCAD Color Index)
COLOR_CROSS_SECTION = 7  # White
COLOR_SCAN_POINTS = 3  # Green
COLOR_POSES = 1  # Red
COLOR_ANNOTATIONS = 8  # Gray


@dataclass
class DxfExporter:
    """Export a localization cycle to DXF.

    Parameters:
        pose_marker_size: Length of the heading arrow in meters
        point_marker_size: Radius of scan point circles in meters
        bounds_margin: Margin around the cross-section bounding box
    """

    pose_marker_size: float = 0.3  # meters
    point_marker_size: float = 0.02  # meters
    bounds_margin: float = 0.5  # meters

    _doc: object = field(default=None, repr=False)
    _msp: object = field(default=None, repr=False)

    def __post_init__(self):
        """Initialize DXF document."""
        self._doc = ezdxf.new(dxfversion="R2010")
        self._msp = self._doc.modelspace()

        for name, color in (
            (LAYER_CROSS_SECTION, COLOR_CROSS_SECTION),
            (LAYER_SCAN_POINTS, COLOR_SCAN_POINTS),
            (LAYER_POSES, COLOR_POSES),
            (LAYER_ANNOTATIONS, COLOR_ANNOTATIONS),
        ):
            self._doc.layers.add(name, color=color, linetype="CONTINUOUS")

    @property
    def modelspace(self):
        return self._msp

    def add_cross_section(self, cross_section: CrossSection) -> None:
        """Add the cross-section segments."""
        for seg in cross_section.line_segments():
            x1, y1, x2, y2 = seg.to_tuple()
            self._msp.add_line(
                (x1, y1),
                (x2, y2),
                dxfattribs={"layer": LAYER_CROSS_SECTION}
            )

    def add_scan_points(self, points: np.ndarray, pose: Pose2D) -> None:
        """Add sensor-frame scan points placed at pose.

        Zero-range points (including invalid readings) are skipped.
        """
        if points is None or len(points) == 0:
            return

        c, s = math.cos(pose.theta), math.sin(pose.theta)
        for px, py in points:
            if px == 0 and py == 0:
                continue
            x = pose.x + c * px - s * py
            y = pose.y + s * px + c * py
            self._msp.add_circle(
                (x, y),
                radius=self.point_marker_size,
                dxfattribs={"layer": LAYER_SCAN_POINTS}
            )

    def add_pose(self, pose: Pose2D, label: Optional[str] = None) -> None:
        """Add a pose as a circle with a heading arrow."""
        x, y, theta = pose.x, pose.y, pose.theta

        head_len = self.pose_marker_size
        head_x = x + head_len * math.cos(theta)
        head_y = y + head_len * math.sin(theta)

        self._msp.add_line((x, y), (head_x, head_y), dxfattribs={"layer": LAYER_POSES})

        wing_angle = math.radians(150)
        wing_len = head_len * 0.3
        for sign in [1, -1]:
            wing_x = head_x + wing_len * math.cos(theta + sign * wing_angle)
            wing_y = head_y + wing_len * math.sin(theta + sign * wing_angle)
            self._msp.add_line((head_x, head_y), (wing_x, wing_y), dxfattribs={"layer": LAYER_POSES})

        self._msp.add_circle((x, y), radius=head_len, dxfattribs={"layer": LAYER_POSES})

        if label:
            self._msp.add_text(
                label,
                height=head_len * 0.5,
                dxfattribs={
                    "layer": LAYER_POSES,
                    "insert": (x + head_len, y + head_len)
                }
            )

    def add_trail(self, poses: Sequence[Pose2D]) -> None:
        """Add the sequence of estimated positions as a polyline."""
        if len(poses) < 2:
            return
        self._msp.add_lwpolyline(
            [(p.x, p.y) for p in poses],
            dxfattribs={"layer": LAYER_POSES}
        )

    def add_bounds(self, cross_section: CrossSection) -> None:
        """Add the cross-section bounding box."""
        bounds = cross_section.bounds
        if bounds is None:
            return

        (x_min, y_min), (x_max, y_max) = bounds
        m = self.bounds_margin
        corners = [
            (x_min - m, y_min - m),
            (x_max + m, y_min - m),
            (x_max + m, y_max + m),
            (x_min - m, y_max + m),
            (x_min - m, y_min - m)  # Close
        ]
        self._msp.add_lwpolyline(corners, dxfattribs={"layer": LAYER_ANNOTATIONS})

    def add_status(self, estimate: BestPoseEstimate, position=(0.0, 0.0)) -> None:
        """Add a text line with the estimate diagnostics."""
        d = estimate.diagnostics
        score = f"{d.best_score:.4f}" if d.best_score is not None else "-"
        text = (
            f"{'initialized' if estimate.initialized else 'uninitialized'} "
            f"score={score} candidates={d.candidate_count} "
            f"segments={d.segment_count} {d.elapsed_ms:.0f}ms"
        )
        self._msp.add_text(
            text,
            height=0.15,
            dxfattribs={"layer": LAYER_ANNOTATIONS, "insert": position}
        )

    def save(self, path: Path | str) -> bool:
        """Save DXF to file."""
        self._doc.saveas(path)
        return True


def export_debug_view(
    cross_section: CrossSection,
    estimate: BestPoseEstimate,
    scan_points: Optional[np.ndarray] = None,
    trail: Optional[Sequence[Pose2D]] = None,
    output_path: Path | str = "debug.dxf",
    **kwargs
) -> bool:
    """Convenience function to export one localization cycle.

    Args:
        cross_section: Cross-section the scan was matched against
        estimate: Emitted estimate
        scan_points: Optional sensor-frame scan points
        trail: Optional earlier poses
        output_path: Output DXF file path
        **kwargs: Additional parameters for DxfExporter

    Returns:
        True if successful
    """
    exporter = DxfExporter(**kwargs)

    exporter.add_cross_section(cross_section)
    exporter.add_bounds(cross_section)

    if scan_points is not None:
        exporter.add_scan_points(scan_points, estimate.pose)

    if trail:
        exporter.add_trail(trail)

    exporter.add_pose(estimate.pose, label="best")

    bounds = cross_section.bounds
    if bounds is not None:
        (x_min, _), (_, y_max) = bounds
        exporter.add_status(estimate, position=(float(x_min), float(y_max) + exporter.bounds_margin + 0.2))
    else:
        exporter.add_status(estimate)

    return exporter.save(output_path)
