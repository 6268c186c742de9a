"""Exception taxonomy shared by the naming, storage and orchestration layers."""

from __future__ import annotations

from enum import Enum


class BildeError(Exception):
    """Base class for all bilde errors."""


class InvalidInputError(BildeError, ValueError):
    """Raised when caller-supplied parameters are missing or malformed.

    Always detected before any store is touched.
    """


class InvalidDimensionsError(InvalidInputError):
    """Raised when a width/height pair cannot describe a variant."""


class UploadTooLargeError(InvalidInputError):
    """Raised when an upload exceeds the configured size limit."""


class MalformedKeyError(BildeError, ValueError):
    """Raised when a storage key cannot be parsed back into its parts."""

    def __init__(self, key: str, reason: str = "missing '_' separator") -> None:
        super().__init__(f"Malformed storage key {key!r}: {reason}")
        self.key = key


class ContentNotFoundError(BildeError, LookupError):
    """Raised by a content store when a key has no stored bytes."""

    def __init__(self, key: str) -> None:
        super().__init__(f"No content stored under {key!r}")
        self.key = key


class SourceNotFoundError(BildeError, LookupError):
    """Raised when the source of a transform is absent from the content store."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Source {key!r} not found")
        self.key = key


class TransformFailedError(BildeError):
    """Raised when the codec cannot decode, resize or encode an image."""


class StoreUnavailableError(BildeError):
    """Raised when a storage primitive (content, index, queue) fails an I/O call."""


class IngestStage(str, Enum):
    """Side-effecting stages of an ingestion, in the order they run."""

    CONTENT = "content"
    INDEX = "index"
    QUEUE = "queue"


class IngestionError(StoreUnavailableError):
    """Raised when one stage of the ingestion pipeline fails.

    Stages completed before the failure are not rolled back: a failed
    ``INDEX`` stage leaves an orphaned blob, a failed ``QUEUE`` stage leaves
    an indexed original with no precompute job.
    """

    def __init__(
        self,
        stage: IngestStage,
        identifier: str,
        key: str,
        completed: list[IngestStage],
    ) -> None:
        done = ", ".join(s.value for s in completed) or "none"
        super().__init__(
            f"Ingestion of {key!r} failed at stage {stage.value!r} (completed: {done})"
        )
        self.stage = stage
        self.identifier = identifier
        self.key = key
        self.completed = completed
