"""File staging data models."""

from dataclasses import dataclass


@dataclass
class TransferResult:
    """Result of a staging copy."""

    source: str
    destination: str
    files_copied: int = 0
    bytes_transferred: int = 0
