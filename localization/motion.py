"""Odometry-based motion prediction.

Between cycles the best pose estimate is moved by the relative motion
reported by odometry, so that the local search starts from the predicted
sensor pose:

    delta = P1 * inverse(P0)      (odometry frame)
    predicted = delta * best
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .geometry import Pose2D

if TYPE_CHECKING:
    from .localizer import LocalizationEstimate

logger = logging.getLogger(__name__)


@dataclass
class MotionIntegrator:
    """Fold absolute odometry poses into the current estimate."""

    def predict(self, previous: Pose2D, current: Pose2D, best: Pose2D) -> Pose2D:
        """Apply the odometry motion previous -> current to best."""
        delta = current.compose(previous.inverse())
        return delta.compose(best)

    def integrate(self, estimate: 'LocalizationEstimate', odometry: Pose2D) -> Pose2D:
        """Update the estimate with a new odometry reading.

        The first reading only seeds the previous odometry pose. Motion is
        applied only once the estimate is initialized; the reading is stored
        as the new previous pose either way.

        Returns:
            The (possibly moved) best pose
        """
        previous = estimate.previous_odometry
        if previous is not None and estimate.initialized:
            estimate.best_pose = self.predict(previous, odometry, estimate.best_pose)
            logger.debug(f"Motion prediction: best pose moved to {estimate.best_pose}")

        estimate.previous_odometry = odometry
        return estimate.best_pose
