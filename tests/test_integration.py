"""Integration tests for the localizer.

These tests run synthetic sessions through the complete localization cycle:
world slicing, scan preprocessing, global then local search and motion
prediction, plus the replay CLI and its output files.
"""

import csv
import json
import math

import numpy as np
import pytest

from localization.config import LocalizerConfig
from localization.geometry import wrap_angle
from localization.localizer import Localizer, main, replay_session, write_results
from localization.sensor_model import ScanSample
from localization.session import Session
from simulation.generate_synthetic import make_session


STEPS = 5


@pytest.fixture
def session_dir(tmp_path):
    """Synthetic session: rectangular room, one obstacle, linear drive from (-2, -1, 0.3)."""
    path = tmp_path / "session"
    make_session(str(path), n_steps=STEPS, beam_count=90, seed=42)
    return path


@pytest.fixture
def replay_config():
    """Global grid around the start pose so the first cycle stays fast."""
    config = LocalizerConfig()
    config.sources.scan_topic = "scans.json"
    config.global_search.x_min = -3.0
    config.global_search.x_max = -1.0
    config.global_search.y_min = -2.0
    config.global_search.y_max = 0.0
    config.global_search.xy_step = 0.25
    config.global_search.theta_min = 0.0
    config.global_search.theta_max = 1.0
    config.global_search.theta_step = 0.1
    return config


class TestReplay:
    """Replaying recorded sessions."""

    def test_replay_tracks_ground_truth(self, session_dir, replay_config):
        session = Session.load(session_dir)
        result = replay_session(session, Localizer(replay_config))

        assert len(result.estimates) == STEPS
        assert all(e.initialized for e in result.estimates)
        assert result.estimates[0].diagnostics.mode == "global"
        assert result.estimates[0].diagnostics.candidate_count == 8 * 8 * 10
        assert all(e.diagnostics.mode == "local" for e in result.estimates[1:])

        assert result.position_errors[0] < 0.2
        assert float(np.mean(result.position_errors)) < 0.2
        assert float(np.max(result.heading_errors)) < 0.2

    def test_replay_with_odometry(self, session_dir, replay_config):
        replay_config.sources.odom_topic = "odometry.json"
        session = Session.load(session_dir)
        localizer = Localizer(replay_config)
        result = replay_session(session, localizer)

        assert len(result.estimates) == STEPS
        assert localizer.estimate.previous_odometry == session.odometry[-1]
        assert float(np.mean(result.position_errors)) < 0.2

    def test_write_results(self, session_dir, replay_config, tmp_path):
        result = replay_session(Session.load(session_dir), Localizer(replay_config))
        out = tmp_path / "out"
        write_results(result, out)

        with open(out / "poses.csv") as f:
            rows = list(csv.DictReader(f))
        assert len(rows) == STEPS
        assert rows[0]["initialized"] == "1"

        with open(out / "summary.json") as f:
            summary = json.load(f)
        assert summary["cycles"] == STEPS
        assert summary["initialized"] is True
        assert "mean_position_error_m" in summary
        assert summary["final_estimate"]["sensor_height"] == 0.3


class TestCli:
    """The replay command line."""

    def test_main_writes_artifacts(self, session_dir, replay_config, tmp_path):
        config_path = tmp_path / "localizer.json"
        replay_config.save(str(config_path))
        out = tmp_path / "artifacts"

        code = main([
            "--session", str(session_dir),
            "--out", str(out),
            "--config", str(config_path),
            "--workers", "2",
            "--dxf",
        ])

        assert code == 0
        assert (out / "poses.csv").exists()
        assert (out / "summary.json").exists()
        assert (out / "debug.dxf").exists()

    def test_main_missing_session(self, tmp_path):
        code = main(["--session", str(tmp_path / "missing"), "--out", str(tmp_path / "out")])
        assert code == 1


class TestStreaming:
    """Callbacks arriving faster than cycles."""

    def test_only_latest_scan_is_processed(self, session_dir, replay_config):
        session = Session.load(session_dir)
        localizer = Localizer(replay_config)

        for scan in session.scans:
            localizer.on_scan(scan)
        estimate = localizer.process(session.world)

        truth = session.ground_truth[-1]
        assert localizer.scan_mailbox.overwritten == STEPS - 1
        assert localizer.cycle_count == 1
        assert math.hypot(estimate.pose.x - truth.x, estimate.pose.y - truth.y) < 0.5
        assert localizer.process(session.world) is None

    def test_invalid_scan_still_produces_estimate(self, session_dir, replay_config):
        session = Session.load(session_dir)
        localizer = Localizer(replay_config)
        scan = session.scans[0]
        localizer.on_scan(ScanSample(
            ranges=np.full(len(scan), np.inf),
            range_max=scan.range_max,
            angle_min=scan.angle_min,
            angle_max=scan.angle_max,
        ))
        estimate = localizer.process(session.world)
        assert estimate.initialized
        assert -math.pi <= estimate.pose.theta < math.pi
        assert wrap_angle(estimate.pose.theta) == pytest.approx(estimate.pose.theta)
