"""Radio tag localization package.

This package provides:
- ConfigManager / EngineConfig: YAML-based configuration and validated engine parameters
- smooth / aggregate: sliding-window smoothing and time-bucket aggregation of RSSI
- DistanceEstimator: exponential decay model RSSI -> distance
- CandidateFilter: per time-bucket node selection
- MultilaterationSolver: nonlinear least-squares trilateration with confidence intervals
- LocalizationPipeline: the whole chain over a batch of detections
"""

from .config_manager import ConfigManager, EngineConfig
from .smoother import smooth
from .aggregator import aggregate
from .decay_model import DistanceEstimator
from .filters import CandidateFilter
from .calculator import MultilaterationSolver
from .pipeline import LocalizationPipeline, PipelineResult
from .models import ConfigurationError

__all__ = [
    "ConfigManager",
    "EngineConfig",
    "smooth",
    "aggregate",
    "DistanceEstimator",
    "CandidateFilter",
    "MultilaterationSolver",
    "LocalizationPipeline",
    "PipelineResult",
    "ConfigurationError",
]
