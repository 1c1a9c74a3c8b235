"""Mission Toolkit: mission-state engine for AI-assisted coding missions."""

__version__ = "0.4.0"

# Branded types for type-safe IDs
from mission_toolkit.types import CheckpointName, DiagnosisId, MissionId

__all__ = [
    "__version__",
    "CheckpointName",
    "DiagnosisId",
    "MissionId",
]
