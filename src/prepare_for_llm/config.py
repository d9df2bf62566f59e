from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, computed_field

DEFAULT_TOKEN_LIMIT = 7_500
MIN_TOKEN_LIMIT = 2_000
MAX_TOKEN_LIMIT = 50_000
DEFAULT_SIZE_CAP_BYTES = 1024 * 1024
DEFAULT_EXCLUSIONS = ["node_modules", ".git"]
DEFAULT_IGNORE_FILE = ".gitignore"
DEFAULT_ENCODING = "gpt2"
DEFAULT_MAX_DEPTH = 64
PROJECT_CONFIG_FILE = ".prepare-for-llm.yml"

# Unsaved editor buffers have no backing file and show up under this prefix.
VIRTUAL_BUFFER_PREFIX = "Untitled"

LANGUAGE_NAMES: dict[str, str] = {
    "js": "JavaScript",
    "ts": "TypeScript",
    "py": "Python",
    "java": "Java",
    "c": "C",
    "cpp": "C++",
    "cs": "C#",
    "go": "Go",
    "rb": "Ruby",
    "php": "PHP",
    "kt": "Kotlin",
    "swift": "Swift",
    "rs": "Rust",
    "lua": "Lua",
    "r": "R",
    "sh": "Shell",
    "pl": "Perl",
    "m": "Objective-C",
    "html": "HTML",
    "css": "CSS",
    "scss": "SCSS",
    "json": "JSON",
    "xml": "XML",
    "md": "Markdown",
    "sql": "SQL",
    "yml": "YAML",
    "yaml": "YAML",
}


def file_extension(path: Path | str) -> str:
    """Return the extension of `path` without its leading dot ("" when there is none)."""
    return Path(path).suffix[1:]


def classify(extension: str) -> str:
    """Map a file extension to a human readable language name.

    The lookup is case sensitive, like the extension itself. Unknown extensions
    are returned verbatim, so this never fails.

    Args:
        extension (str): the extension, with or without its leading dot

    Returns:
        str: the language name, or `extension` itself when it is not in the table
    """
    ext = extension[1:] if extension.startswith(".") else extension
    return LANGUAGE_NAMES.get(ext, ext)


def is_classifiable(path: Path | str) -> bool:
    """Check if `path` gets a non-empty language grouping (i.e. it has an extension)."""
    return bool(classify(file_extension(path)))


class FileRecord(BaseModel):
    """Metadata for a file discovered during a tree walk.

    Attributes:
        path: Absolute path to the file on disk, the unique key.
        root: Root the walk started from.
        size: File size in bytes.
        mtime_ns: POSIX mtime in nanoseconds.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    path: Path = Field(..., description="Absolute file path")
    root: Path = Field(..., description="Root directory of the walk")
    size: int = Field(..., ge=0, description="File size in bytes")
    mtime_ns: int = Field(0, description="POSIX modification time (nanoseconds)")

    @computed_field
    @property
    def rel(self) -> str:
        """Path relative to the root, with POSIX separators."""
        try:
            return self.path.relative_to(self.root).as_posix()
        except ValueError:
            return self.path.as_posix()

    @computed_field
    @property
    def extension(self) -> str:
        """Extension without its leading dot."""
        return file_extension(self.path)

    @computed_field
    @property
    def language_name(self) -> str:
        """Language name derived from the extension."""
        return classify(self.extension)
