"""
Error types for Altair Mod Manager.

Every error raised by the core derives from ``ModManagerError`` so the UI can
catch one base class and show ``str(exc)`` to the user verbatim.
"""

from __future__ import annotations

from pathlib import Path


class ModManagerError(Exception):
    pass


class InvalidArgumentError(ModManagerError, ValueError):
    pass


# ── Taxonomy ─────────────────────────────────────────────────────────


class NotFoundError(ModManagerError):
    def __init__(self, path: str | Path, message: str = "Not found") -> None:
        self.path = path
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.message}: '{self.path}'"


class FormatError(ModManagerError):
    pass


class NetworkError(ModManagerError):
    pass


class OperationCancelledError(ModManagerError):
    pass


class StorageError(ModManagerError):
    pass


class AlreadyInStateError(ModManagerError):
    pass


class NotPatchedError(ModManagerError):
    pass


# ── Manifest ─────────────────────────────────────────────────────────


class ManifestNotLoadedError(ModManagerError):
    def __init__(self, title: str) -> None:
        self.title = title
        super().__init__(title)

    def __str__(self) -> str:
        return f"{self.title} manifest not loaded. Fetch it first."


class ModNotFoundError(NotFoundError):
    def __init__(self, mod_id: str, title: str) -> None:
        self.mod_id = mod_id
        self.title = title
        super().__init__(mod_id, f"Mod not found in {title} manifest")


class ManifestFormatError(FormatError):
    pass


# ── Archives ─────────────────────────────────────────────────────────


class ArchiveNotFoundError(NotFoundError):
    def __init__(self, path: str | Path) -> None:
        super().__init__(path, "Archive file does not exist")


class UnsupportedArchiveError(FormatError):
    def __init__(self, path: str | Path, supported: str) -> None:
        self.path = path
        self.supported = supported
        super().__init__(str(path))

    def __str__(self) -> str:
        return (
            f"Archive format of '{Path(self.path).name}' is not supported. "
            f"Supported formats: {self.supported}"
        )


class ArchiveFormatError(FormatError):
    pass


class ExtractionCancelledError(OperationCancelledError):
    pass


# ── Downloads ────────────────────────────────────────────────────────


class DownloadCancelledError(OperationCancelledError):
    pass


# ── Executable patching ──────────────────────────────────────────────


class ExecutableNotFoundError(NotFoundError):
    def __init__(self, path: str | Path) -> None:
        super().__init__(path, "Game executable does not exist")


class InvalidExecutableError(FormatError):
    pass


class PatternNotFoundError(NotFoundError):
    def __init__(self, path: str | Path, literal: str) -> None:
        self.literal = literal
        super().__init__(path, f"Failed to find '{literal}' in the file")


class AlreadyPatchedError(AlreadyInStateError):
    pass


class PatchFormatMismatchError(FormatError):
    pass


# ── Config documents ─────────────────────────────────────────────────


class IniFileNotFoundError(NotFoundError):
    def __init__(self, path: str | Path) -> None:
        super().__init__(path, "Couldn't find the INI file")


class TemplateNotFoundError(NotFoundError):
    def __init__(self, path: str | Path) -> None:
        super().__init__(path, "Template file not found")


class ModsDirectoryNotFoundError(NotFoundError):
    def __init__(self, path: str | Path) -> None:
        super().__init__(path, "Mods directory not found")


# ── Orchestration ────────────────────────────────────────────────────


class ModOperationError(ModManagerError):
    """A download/install/uninstall step failed for a named add-on.

    The original exception is available as ``__cause__``; its message is
    repeated so the UI does not have to walk the chain.
    """

    def __init__(self, mod_name: str, action: str, cause: BaseException) -> None:
        self.mod_name = mod_name
        self.action = action
        self.cause = cause
        super().__init__(mod_name, action)

    def __str__(self) -> str:
        return f"Failed to {self.action} {self.mod_name}: {self.cause}"
