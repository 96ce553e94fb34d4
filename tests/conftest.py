"""Pytest configuration and shared fixtures."""

import math
import sys
from pathlib import Path

import numpy as np
import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from localization.config import LocalizerConfig
from localization.cross_section import CrossSectionBuilder, Entity, WorldSnapshot
from localization.geometry import Pose3D
from localization.sensor_model import BeamConfig, ScanSample
from tests.worlds import box_entity


@pytest.fixture
def square_world():
    """1 m square obstacle at the origin plus a shapeless marker."""
    return WorldSnapshot(entities=[
        box_entity("square", 0.0, 0.0, 1.0, 1.0),
        Entity(id="marker", pose=Pose3D.from_xyz_rpy(2.0, 2.0, 0.0)),
    ])


@pytest.fixture
def asymmetric_world(square_world):
    """Square obstacle plus a wall along y = 1.5 for x in [-4, 0]."""
    entities = list(square_world.entities)
    entities.append(box_entity("wall", -2.0, 1.5, 4.0, 0.1))
    return WorldSnapshot(entities=entities)


@pytest.fixture
def square_segments(square_world):
    """Cross-section of the square world at the default plane height."""
    return CrossSectionBuilder().build(square_world).segments


@pytest.fixture
def narrow_beams():
    """8 beams over [-0.4, 0.4] rad, 10 m range."""
    return BeamConfig(beam_count=8, range_min=0.0, range_max=10.0, angle_min=-0.4, angle_max=0.4)


@pytest.fixture
def make_scan(narrow_beams):
    """Build a ScanSample with the narrow beam geometry."""
    def _make(ranges):
        return ScanSample(
            ranges=np.asarray(ranges, dtype=float),
            range_min=narrow_beams.range_min,
            range_max=narrow_beams.range_max,
            angle_min=narrow_beams.angle_min,
            angle_max=narrow_beams.angle_max,
        )
    return _make


@pytest.fixture
def sample_config():
    """Localizer config with a small global grid around x = 3."""
    config = LocalizerConfig()
    config.sources.scan_topic = "scan"
    config.global_search.x_min = -4.0
    config.global_search.x_max = 4.0
    config.global_search.y_min = -2.0
    config.global_search.y_max = 2.0
    config.global_search.xy_step = 0.5
    config.global_search.theta_step = math.pi / 8
    return config


@pytest.fixture
def sample_config_dict():
    """Sample configuration as dictionary."""
    return {
        "sources": {
            "scan_topic": "/scan",
            "odom_topic": "/odom",
        },
        "sensor": {
            "plane_height": 0.25,
        },
        "global_search": {
            "x_min": -2.0,
            "x_max": 2.0,
            "xy_step": 0.25,
        },
        "scoring": {
            "workers": 4,
        },
    }
