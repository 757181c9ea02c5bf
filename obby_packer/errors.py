"""Error taxonomy for packing and reading `.obby` archives.

I/O failures are not wrapped: ``OSError`` from the filesystem propagates as-is.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from obby_packer.package.reader import ObbyArchive


class ObbyError(Exception):
    """Base class for archive errors."""


class FormatError(ObbyError):
    """Magic mismatch, truncated stream or malformed field."""

    def __init__(self, message: str, offset: int | None = None) -> None:
        if offset is not None:
            message = f"{message} (offset {offset})"
        super().__init__(message)
        self.offset = offset


class VerificationError(ObbyError):
    """Raised after a structurally valid archive failed verification.

    ``archive`` holds the parsed archive so callers can still inspect
    metadata and entries for diagnostics.
    """

    def __init__(self, message: str, archive: ObbyArchive | None = None) -> None:
        super().__init__(message)
        self.archive = archive


class IntegrityError(VerificationError):
    """Recomputed digest does not match the stored one."""

    def __init__(
        self,
        expected: bytes,
        actual: bytes,
        archive: ObbyArchive | None = None,
    ) -> None:
        super().__init__(
            f"SHA-384 mismatch: stored {expected.hex()}, computed {actual.hex()}",
            archive=archive,
        )
        self.expected = expected
        self.actual = actual


class SignatureError(VerificationError):
    """Signature is invalid, or required but absent."""


class SigningKeyError(ObbyError):
    """Key material is missing, unparsable or of an unsupported type.

    Raised during verification when a signed archive needs a public key that
    was not supplied; ``archive`` then holds the parsed archive.
    """

    def __init__(self, message: str, archive: ObbyArchive | None = None) -> None:
        super().__init__(message)
        self.archive = archive
