from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class PrepareForLLMError(Exception):
    """Base exception for errors in the prepare_for_llm package."""


@dataclass(frozen=True)
class InputTooLargeError(PrepareForLLMError):
    """Raised when the cumulative size of the selected files exceeds the hard cap.

    No batch is produced when this is raised.
    """

    total_bytes: int
    size_cap_bytes: int
    path: Path | None = None
    message: str = "Files too large to load into memory."

    def __str__(self) -> str:
        return f"{self.message} ({self.total_bytes} bytes > {self.size_cap_bytes} bytes cap)"


@dataclass(frozen=True)
class BatchingError(PrepareForLLMError):
    """Raised when the batching pass hits an unexpected internal fault."""

    path: Path | None
    reason: str

    def __str__(self) -> str:
        return f"Batching failed at {self.path}: {self.reason}"


@dataclass(frozen=True)
class UnreadableFileError(PrepareForLLMError):
    """Raised when a file cannot be read or decoded."""

    path: Path
    reason: str

    def __str__(self) -> str:
        return f"Could not read {self.path}: {self.reason}"


@dataclass(frozen=True)
class IgnoreFileError(PrepareForLLMError):
    """Raised when the ignore file exists but cannot be loaded."""

    path: Path
    reason: str

    def __str__(self) -> str:
        return f"Could not load ignore file {self.path}: {self.reason}"
