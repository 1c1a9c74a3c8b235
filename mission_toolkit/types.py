"""Branded identifier types for Mission Toolkit.

These are plain strings at runtime; the NewType wrappers only exist so
that a checkpoint name cannot be passed where a mission ID is expected
without the type checker noticing.
"""

from typing import NewType

# Mission namespace, e.g. "20261019142233-0421"
MissionId = NewType("MissionId", str)

# Checkpoint name without the ref prefix, e.g. "20261019142233-0421-3"
CheckpointName = NewType("CheckpointName", str)

# Diagnosis document ID, e.g. "DIAG-20261019-142233"
DiagnosisId = NewType("DiagnosisId", str)
