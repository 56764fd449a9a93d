from .image_probe import ImageProbe, artifact_name
from .label_commit import (
    LabelCommitClient,
    LabelCommitError,
    CommitConflictError,
    CommitTransportError,
)

__all__ = [
    "ImageProbe",
    "artifact_name",
    # Remote label document
    "LabelCommitClient",
    "LabelCommitError",
    "CommitConflictError",
    "CommitTransportError",
]
