"""
Error Handling - Centralized error policies and custom exceptions.

This module defines how different error types should be handled throughout
the indexing pipeline: record-level problems are skipped with a log line,
archive-level problems abort one repository, storage problems propagate.
"""

import logging
from enum import Enum, auto
from dataclasses import dataclass
from typing import Optional
from pathlib import Path


logger = logging.getLogger(__name__)


class ErrorAction(Enum):
    """What to do when an error occurs."""
    SKIP = auto()           # Skip this record, continue processing
    ABORT = auto()          # Stop processing the current repository
    PROPAGATE = auto()      # Re-raise to the caller


@dataclass
class ErrorPolicy:
    """Policy for handling a specific error type."""
    action: ErrorAction
    log_level: int
    message_template: str = "{file}: {error}"


class IndexingError(Exception):
    """Base exception for repository index errors."""
    pass


class ArchiveError(IndexingError):
    """A repository archive could not be read."""
    def __init__(self, path: Path, reason: str = ""):
        self.path = path
        self.reason = reason
        message = f"{self.summary}: {path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)

    summary = "Archive error"


class ArchiveOpenError(ArchiveError):
    """The archive file could not be opened."""
    summary = "Failed to open archive"


class ArchiveExtractError(ArchiveError):
    """The compressed stream or tar structure is malformed."""
    summary = "Failed to extract archive"


class MalformedRecordError(IndexingError):
    """A desc/files entry is missing required data."""
    def __init__(self, identifier: str, reason: str):
        self.identifier = identifier
        self.reason = reason
        super().__init__(f"Malformed record {identifier}: {reason}")


class CacheError(IndexingError):
    """Base class for cache store failures."""
    pass


class CacheMissingError(CacheError):
    """The cache database does not exist yet and must be built."""
    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"Package cache not found: {path} (run an update first)")


class CacheDatabaseError(CacheError):
    """Any failure reported by the relational store."""
    pass


class PackageNotFoundError(IndexingError):
    """No repository carries a package with this name."""
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Package {name} not found")


# Error type to policy mapping (first match wins, so subclasses come first)
ERROR_POLICIES: dict[type, ErrorPolicy] = {
    MalformedRecordError: ErrorPolicy(
        action=ErrorAction.SKIP,
        log_level=logging.ERROR,
        message_template="Rejected entry in {file}: {error}"
    ),
    ArchiveOpenError: ErrorPolicy(
        action=ErrorAction.ABORT,
        log_level=logging.ERROR,
        message_template="Cannot open archive {file}, repository not updated"
    ),
    ArchiveExtractError: ErrorPolicy(
        action=ErrorAction.ABORT,
        log_level=logging.ERROR,
        message_template="Corrupt archive {file}, repository not updated: {error}"
    ),
    CacheError: ErrorPolicy(
        action=ErrorAction.PROPAGATE,
        log_level=logging.ERROR,
        message_template="Cache failure while processing {file}: {error}"
    ),
    FileNotFoundError: ErrorPolicy(
        action=ErrorAction.SKIP,
        log_level=logging.WARNING,
        message_template="Archive vanished before it could be read: {file}"
    ),
    PermissionError: ErrorPolicy(
        action=ErrorAction.SKIP,
        log_level=logging.WARNING,
        message_template="Permission denied: {file}"
    ),
    OSError: ErrorPolicy(
        action=ErrorAction.SKIP,
        log_level=logging.WARNING,
        message_template="OS error reading file: {file} - {error}"
    ),
}


def handle_error(
    error: Exception,
    file_path: Optional[Path] = None,
    context: str = ""
) -> ErrorAction:
    """
    Handle an error according to the defined policies.

    Args:
        error: The exception that occurred
        file_path: Archive being processed (if applicable)
        context: Additional context for logging

    Returns:
        The action to take (SKIP, ABORT, PROPAGATE)
    """
    policy = None
    for error_type, p in ERROR_POLICIES.items():
        if isinstance(error, error_type):
            policy = p
            break

    # Unknown errors are bugs, let them surface
    if policy is None:
        policy = ErrorPolicy(
            action=ErrorAction.PROPAGATE,
            log_level=logging.ERROR,
            message_template="Unexpected error: {file} - {error}"
        )

    file_str = str(file_path) if file_path else "<unknown>"
    message = policy.message_template.format(file=file_str, error=str(error))
    if context:
        message = f"[{context}] {message}"

    logger.log(policy.log_level, message)

    return policy.action
