"""
Error taxonomy for deck containers, the deck store and import.

Everything raised on purpose derives from MflashError, so callers that only
care about "did it work" can catch one type.
"""


class MflashError(Exception):
    """Base class for every deliberate failure."""


# ── Manifest ──────────────────────────────────────────────────

class ManifestError(MflashError):
    pass


class UnsupportedFormat(ManifestError):
    pass


class UnsupportedVersion(ManifestError):
    pass


class MalformedManifest(ManifestError):
    pass


# ── Integrity ─────────────────────────────────────────────────

class IntegrityMismatch(MflashError):
    """Manifest and database disagree (card count, deck id)."""


class IntegrityError(IntegrityMismatch):
    """A populate/update would break a key or check constraint."""


class NotFound(MflashError):
    pass


# ── Container ─────────────────────────────────────────────────

class ContainerError(MflashError):
    pass


class NotAContainer(ContainerError):
    pass


class MissingManifest(ContainerError):
    pass


class MissingDatabase(ContainerError):
    pass


class CorruptDatabase(ContainerError):
    pass


class MediaFileMissing(ContainerError):
    def __init__(self, file_name: str):
        super().__init__(f"media file not in container: {file_name}")
        self.file_name = file_name


class IOFailure(ContainerError):
    pass


# ── Import sources ────────────────────────────────────────────

class SourceError(MflashError):
    """A text, Markdown, JSON or Anki file could not be turned into cards."""
