# SQLAlchemy models
from .artifact import (
    Artifact,
    ArtifactPrivate,
    ArtifactStatus,
    Attempt,
)
from .base import Base
from .project import (
    Project,
    ProjectChunk,
    ProjectStatus,
)

__all__ = [
    # Base
    "Base",
    # Projects
    "Project",
    "ProjectChunk",
    "ProjectStatus",
    # Artifacts
    "Artifact",
    "ArtifactPrivate",
    "ArtifactStatus",
    "Attempt",
]
