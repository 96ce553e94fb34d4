"""Configuration settings for the localizer."""

from dataclasses import dataclass, field, asdict
from typing import Optional
import json
import math
import os


class ConfigurationError(ValueError):
    """Raised when the localizer configuration is unusable."""


@dataclass
class SourceConfig:
    """Input channel selectors."""
    scan_topic: Optional[str] = None  # required
    odom_topic: Optional[str] = None  # optional, enables motion prediction


@dataclass
class SensorConfig:
    """Laser mounting."""
    plane_height: float = 0.3  # meters, height of the scan plane


@dataclass
class GlobalSearchConfig:
    """Grid searched while the estimate is not initialized."""
    x_min: float = -5.0
    x_max: float = 5.0
    y_min: float = -5.0
    y_max: float = 5.0
    xy_step: float = 0.2  # meters
    theta_min: float = 0.0
    theta_max: float = 2 * math.pi
    theta_step: float = 0.1  # radians


@dataclass
class LocalSearchConfig:
    """Window searched around the predicted pose once initialized."""
    xy_window: float = 0.3  # meters, offsets in [-window, window)
    xy_step: float = 0.1  # meters
    theta_window: float = 1.0  # radians
    theta_step: float = 0.1  # radians


@dataclass
class ScoringConfig:
    """Candidate scoring."""
    max_beams: int = 100  # beams used for scoring
    error_cap: float = 0.3  # meters, per-beam error clamp
    workers: int = 1  # threads scoring candidate batches
    max_batch_elements: int = 2_000_000  # candidates x beams x segments per batch


@dataclass
class LocalizerConfig:
    """Main localizer configuration."""
    sources: SourceConfig = field(default_factory=SourceConfig)
    sensor: SensorConfig = field(default_factory=SensorConfig)
    global_search: GlobalSearchConfig = field(default_factory=GlobalSearchConfig)
    local_search: LocalSearchConfig = field(default_factory=LocalSearchConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)

    @classmethod
    def from_dict(cls, data: dict) -> "LocalizerConfig":
        """Build a config, keeping defaults for unspecified values."""
        config = cls()
        for section in ("sources", "sensor", "global_search", "local_search", "scoring"):
            if section in data:
                target = getattr(config, section)
                for k, v in data[section].items():
                    if hasattr(target, k):
                        setattr(target, k, v)
        return config

    @classmethod
    def from_file(cls, path: str) -> "LocalizerConfig":
        """Load configuration from JSON file."""
        with open(path) as f:
            data = json.load(f)
        return cls.from_dict(data)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return asdict(self)

    def save(self, path: str):
        """Save configuration to JSON file."""
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    def validate(self) -> None:
        """Check the configuration.

        Raises:
            ConfigurationError: if no scan source is set or a value is out of range
        """
        if not self.sources.scan_topic:
            raise ConfigurationError("sources.scan_topic is required")

        steps = {
            "global_search.xy_step": self.global_search.xy_step,
            "global_search.theta_step": self.global_search.theta_step,
            "local_search.xy_step": self.local_search.xy_step,
            "local_search.theta_step": self.local_search.theta_step,
        }
        for name, value in steps.items():
            if value <= 0:
                raise ConfigurationError(f"{name} must be positive, got {value}")

        if self.scoring.max_beams < 1:
            raise ConfigurationError(f"scoring.max_beams must be >= 1, got {self.scoring.max_beams}")
        if self.scoring.error_cap < 0:
            raise ConfigurationError(f"scoring.error_cap must be >= 0, got {self.scoring.error_cap}")
        if self.scoring.workers < 1:
            raise ConfigurationError(f"scoring.workers must be >= 1, got {self.scoring.workers}")
        if self.scoring.max_batch_elements < 1:
            raise ConfigurationError(
                f"scoring.max_batch_elements must be >= 1, got {self.scoring.max_batch_elements}"
            )


# Default config file locations
DEFAULT_CONFIG_PATHS = [
    "/etc/scanloc/localizer.json",
    os.path.expanduser("~/.config/scanloc/localizer.json"),
    "./localizer_config.json",
]


def load_config(path: Optional[str] = None) -> LocalizerConfig:
    """Load configuration from file or return defaults."""
    if path and os.path.exists(path):
        return LocalizerConfig.from_file(path)

    for p in DEFAULT_CONFIG_PATHS:
        if os.path.exists(p):
            return LocalizerConfig.from_file(p)

    return LocalizerConfig()
