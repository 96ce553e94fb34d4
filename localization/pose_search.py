"""Exhaustive candidate-pose search.

This module scores candidate sensor poses against a laser scan:
1. Generate candidates (global grid, or local window around a prediction)
2. Render the cross-section from every candidate with the sensor model
3. Sum the capped squared range error over all beams
4. Keep the minimum, first-generated candidate winning ties

Candidates are scored in batches; batches can be spread over a thread pool
while the reduction stays an ordered fold over generation order.
"""
from __future__ import annotations

import concurrent.futures
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Iterator, Optional, Tuple

import numpy as np

from .config import GlobalSearchConfig, LocalSearchConfig, ScoringConfig
from .geometry import Pose2D, wrap_angle
from .sensor_model import SensorModel, world_to_sensor

if TYPE_CHECKING:
    from .localizer import LocalizationEstimate

logger = logging.getLogger(__name__)


def grid_axis(start: float, stop: float, step: float) -> np.ndarray:
    """Values start, start + step, ... strictly below stop."""
    if step <= 0 or stop <= start:
        return np.zeros(0)
    # Tolerance keeps e.g. (-0.3, 0.3, 0.1) at 6 values despite rounding
    n = max(0, math.ceil((stop - start) / step - 1e-9))
    return start + step * np.arange(n)


@dataclass
class CandidatePose:
    """A scored candidate pose."""
    pose: Pose2D
    score: float  # capped sum of squared range errors


class CandidateGrid(ABC):
    """Lazily generated candidate poses, addressed by generation index."""

    @abstractmethod
    def __len__(self) -> int:
        """Number of candidates."""

    @abstractmethod
    def poses_at(self, index: np.ndarray) -> np.ndarray:
        """(C, 3) poses for generation indices."""

    def chunks(self, size: int) -> Iterator[np.ndarray]:
        """Yield (C, 3) pose arrays of at most size candidates, in order."""
        total = len(self)
        for start in range(0, total, size):
            yield self.poses_at(np.arange(start, min(start + size, total)))

    def __iter__(self) -> Iterator[Pose2D]:
        for chunk in self.chunks(4096):
            for x, y, theta in chunk:
                yield Pose2D(float(x), float(y), float(theta))


@dataclass
class GlobalCandidates(CandidateGrid):
    """Grid over (x, y, theta), x outermost and theta innermost."""
    xs: np.ndarray
    ys: np.ndarray
    thetas: np.ndarray

    @classmethod
    def from_config(cls, cfg: GlobalSearchConfig) -> 'GlobalCandidates':
        return cls(
            xs=grid_axis(cfg.x_min, cfg.x_max, cfg.xy_step),
            ys=grid_axis(cfg.y_min, cfg.y_max, cfg.xy_step),
            thetas=grid_axis(cfg.theta_min, cfg.theta_max, cfg.theta_step),
        )

    def __len__(self) -> int:
        return len(self.xs) * len(self.ys) * len(self.thetas)

    def poses_at(self, index: np.ndarray) -> np.ndarray:
        """(C, 3) poses for generation indices."""
        ny, nt = len(self.ys), len(self.thetas)
        ix = index // (ny * nt)
        iy = (index // nt) % ny
        it = index % nt
        return np.stack([self.xs[ix], self.ys[iy], self.thetas[it]], axis=1)


@dataclass
class LocalCandidates(CandidateGrid):
    """The predicted pose, then predicted * offset over a local window."""
    center: Pose2D
    dxs: np.ndarray
    dys: np.ndarray
    dthetas: np.ndarray

    @classmethod
    def from_config(cls, center: Pose2D, cfg: LocalSearchConfig) -> 'LocalCandidates':
        xy = grid_axis(-cfg.xy_window, cfg.xy_window, cfg.xy_step)
        return cls(
            center=center,
            dxs=xy,
            dys=xy.copy(),
            dthetas=grid_axis(-cfg.theta_window, cfg.theta_window, cfg.theta_step),
        )

    def __len__(self) -> int:
        return 1 + len(self.dxs) * len(self.dys) * len(self.dthetas)

    def poses_at(self, index: np.ndarray) -> np.ndarray:
        """(C, 3) poses for generation indices; index 0 is the center."""
        offsets = np.zeros((len(index), 3))
        is_offset = index > 0
        if len(self) > 1 and np.any(is_offset):
            ny, nt = len(self.dys), len(self.dthetas)
            k = index[is_offset] - 1
            offsets[is_offset] = np.stack([
                self.dxs[k // (ny * nt)],
                self.dys[(k // nt) % ny],
                self.dthetas[k % nt],
            ], axis=1)

        dx, dy, dt = offsets[:, 0], offsets[:, 1], offsets[:, 2]
        cx, cy, ct = self.center.x, self.center.y, self.center.theta
        c, s = math.cos(ct), math.sin(ct)
        return np.stack([cx + c * dx - s * dy, cy + s * dx + c * dy, ct + dt], axis=1)


def _first_minimum(
    scored: Iterable[Tuple[np.ndarray, np.ndarray]]
) -> Tuple[Optional[np.ndarray], float]:
    """Ordered fold over (poses, errors) batches; earlier candidates win ties."""
    best_pose: Optional[np.ndarray] = None
    best_score = math.inf
    for poses, errors in scored:
        i = int(np.argmin(errors))  # first occurrence within the batch
        if errors[i] < best_score:
            best_score, best_pose = float(errors[i]), poses[i]
    return best_pose, best_score


def capped_squared_error(
    sensor_ranges: np.ndarray,
    model_ranges: np.ndarray,
    error_cap: float
) -> np.ndarray:
    """Per-beam squared error with |diff| clamped to error_cap."""
    diff = np.minimum(np.abs(sensor_ranges - model_ranges), error_cap)
    return diff * diff


@dataclass
class SearchResult:
    """Outcome of one candidate search."""
    best: Optional[CandidatePose]
    candidate_count: int
    mode: str  # "global" or "local"

    @property
    def updated(self) -> bool:
        return self.best is not None


@dataclass
class PoseSearchEngine:
    """Select the candidate pose whose rendered scan best matches the sensor.

    Parameters:
        global_search: Grid used before the first successful search
        local_search: Window used around the predicted pose afterwards
        scoring: Error cap, thread count and batch sizing
    """

    global_search: GlobalSearchConfig = field(default_factory=GlobalSearchConfig)
    local_search: LocalSearchConfig = field(default_factory=LocalSearchConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)

    def candidates_for(self, estimate: 'LocalizationEstimate') -> CandidateGrid:
        """Global grid when uninitialized, local window otherwise."""
        if not estimate.initialized:
            return GlobalCandidates.from_config(self.global_search)
        return LocalCandidates.from_config(estimate.best_pose, self.local_search)

    def batch_size(self, beam_count: int, segment_count: int) -> int:
        """Candidates per batch, bounded by max_batch_elements cells."""
        per_candidate = max(1, beam_count) * max(1, segment_count)
        return max(1, self.scoring.max_batch_elements // per_candidate)

    def score(
        self,
        poses: np.ndarray,
        segments: np.ndarray,
        sensor_ranges: np.ndarray,
        model: SensorModel
    ) -> np.ndarray:
        """Capped sum of squared errors for (C, 3) candidate poses."""
        local = world_to_sensor(segments, poses)
        model_ranges = model.render_ranges_batch(local)
        errors = capped_squared_error(sensor_ranges[None, :], model_ranges, self.scoring.error_cap)
        return errors.sum(axis=1)

    def search(
        self,
        candidates: CandidateGrid,
        segments: np.ndarray,
        sensor_ranges: np.ndarray,
        model: SensorModel
    ) -> SearchResult:
        """Score all candidates and return the first minimum-error one."""
        mode = "global" if isinstance(candidates, GlobalCandidates) else "local"
        total = len(candidates)
        if total == 0:
            return SearchResult(best=None, candidate_count=0, mode=mode)

        segments = np.asarray(segments, dtype=float).reshape(-1, 2, 2)
        sensor_ranges = np.asarray(sensor_ranges, dtype=float)
        size = self.batch_size(model.beam_count, len(segments))

        def score_chunk(poses: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
            return poses, self.score(poses, segments, sensor_ranges, model)

        if self.scoring.workers > 1:
            with concurrent.futures.ThreadPoolExecutor(max_workers=self.scoring.workers) as executor:
                # map() yields in submission order
                best_pose, best_score = _first_minimum(executor.map(score_chunk, candidates.chunks(size)))
        else:
            best_pose, best_score = _first_minimum(map(score_chunk, candidates.chunks(size)))

        if best_pose is None:
            return SearchResult(best=None, candidate_count=total, mode=mode)

        x, y, theta = best_pose
        winner = Pose2D(x=float(x), y=float(y), theta=wrap_angle(float(theta)))
        return SearchResult(
            best=CandidatePose(pose=winner, score=best_score),
            candidate_count=total,
            mode=mode,
        )

    def update(
        self,
        estimate: 'LocalizationEstimate',
        segments: np.ndarray,
        sensor_ranges: np.ndarray,
        model: SensorModel
    ) -> SearchResult:
        """Search around the estimate and store the winner in it.

        A search with at least one candidate marks the estimate initialized.
        With no candidates the estimate is left untouched.
        """
        candidates = self.candidates_for(estimate)
        result = self.search(candidates, segments, sensor_ranges, model)

        if not result.updated:
            logger.warning(f"No candidates generated in {result.mode} mode; keeping previous estimate")
            return result

        estimate.best_pose = result.best.pose
        estimate.initialized = True
        return result
