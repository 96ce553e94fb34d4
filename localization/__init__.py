"""Scanloc scan-matching localization package.

This package estimates the planar pose of a laser scanner by matching each
scan against a cross-section of a known 3D world model.

Modules:
- localizer: Cycle orchestration, mailboxes and emitted estimates
- cross_section: World model slicing at the sensor height
- sensor_model: Ray-cast laser range finder model
- pose_search: Global/local candidate search and scoring
- motion: Odometry motion prediction
- config: Localizer configuration
- session: Recorded session files
- dxf_exporter: DXF debug view
"""

from .config import LocalizerConfig, ConfigurationError, load_config
from .geometry import Pose2D, Pose3D, LineSegment, Mesh
from .cross_section import Entity, WorldSnapshot, CrossSection, CrossSectionBuilder
from .sensor_model import ScanSample, BeamConfig, SensorModel, sanitize_ranges, subsample_scan
from .motion import MotionIntegrator
from .pose_search import (
    PoseSearchEngine,
    CandidatePose,
    SearchResult,
    GlobalCandidates,
    LocalCandidates,
)
from .localizer import (
    Localizer,
    Mailbox,
    LocalizationEstimate,
    BestPoseEstimate,
    Diagnostics,
)
from .session import Session

__all__ = [
    # Config
    "LocalizerConfig",
    "ConfigurationError",
    "load_config",
    # Geometry
    "Pose2D",
    "Pose3D",
    "LineSegment",
    "Mesh",
    # Cross-section
    "Entity",
    "WorldSnapshot",
    "CrossSection",
    "CrossSectionBuilder",
    # Sensor model
    "ScanSample",
    "BeamConfig",
    "SensorModel",
    "sanitize_ranges",
    "subsample_scan",
    # Motion
    "MotionIntegrator",
    # Search
    "PoseSearchEngine",
    "CandidatePose",
    "SearchResult",
    "GlobalCandidates",
    "LocalCandidates",
    # Orchestration
    "Localizer",
    "Mailbox",
    "LocalizationEstimate",
    "BestPoseEstimate",
    "Diagnostics",
    "Session",
]
