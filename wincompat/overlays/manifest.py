# wincompat/overlays/manifest.py
from __future__ import annotations
import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from pydantic import BaseModel, ConfigDict, Field, field_validator

from wincompat.core.hashing import Digest
from wincompat.prefix.prefix import Prefix, WineArch
from wincompat.semver.semver import SemVer, parseSemVer

__all__ = [
    "BACKUP_SUFFIX",
    "OverlayFileSpec",
    "OverlayVersionSpec",
    "OverlayFamilySpec",
    "OverlayFile",
    "OverlayVersion",
    "backupPathOf",
]

# Reserved suffix for originals preserved beside an overlay file
BACKUP_SUFFIX = ".old"

_OVERRIDE_NAME_RE = re.compile(r"[A-Za-z0-9_\-.]+")



def _checkRelative(value: str) -> str:
    path = PurePosixPath(value.replace("\\", "/"))
    if not value or path.is_absolute() or ".." in path.parts or str(path) in ("", "."):
        raise ValueError(f"must be a relative path inside the target directory, got {value!r}")
    if path.name.endswith(BACKUP_SUFFIX):
        raise ValueError(f"'{BACKUP_SUFFIX}' is reserved for backups: {value!r}")
    return str(path)



class OverlayFileSpec(BaseModel):
    """One file of an overlay version, as written in a manifest."""
    model_config = ConfigDict(extra="forbid")

    path: str
    sha256: str = Field(pattern=r"^[0-9a-fA-F]{64}$")
    arch: WineArch = WineArch.WIN64
    source: str | None = None

    @field_validator("path")
    @classmethod
    def _validatePath(cls, value: str) -> str:
        return _checkRelative(value)

    @field_validator("source")
    @classmethod
    def _validateSource(cls, value: str | None) -> str | None:
        if value is None:
            return None
        path = PurePosixPath(value.replace("\\", "/"))
        if path.is_absolute() or ".." in path.parts:
            raise ValueError(f"source must be relative to the extracted archive, got {value!r}")
        return str(path)



class OverlayVersionSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    version: str
    files: list[OverlayFileSpec] = Field(min_length=1)
    url: str | None = None
    archiveSha256: str | None = Field(default=None, pattern=r"^[0-9a-fA-F]{64}$")
    # DLLs switched to "native" in DllOverrides while the version is applied
    overrides: list[str] = Field(default_factory=list)

    @field_validator("version")
    @classmethod
    def _validateVersion(cls, value: str) -> str:
        parseSemVer(value)
        return value

    @field_validator("overrides")
    @classmethod
    def _validateOverrides(cls, value: list[str]) -> list[str]:
        names = []
        for name in value:
            name = name.strip()
            if name.lower().endswith(".dll"):
                name = name[:-4]
            if not _OVERRIDE_NAME_RE.fullmatch(name):
                raise ValueError(f"not a DLL name: {name!r}")
            if name.lower() not in (seen.lower() for seen in names):
                names.append(name)
        return names



class OverlayFamilySpec(BaseModel):
    """A manifest: one overlay family and its known versions."""
    model_config = ConfigDict(extra="forbid")

    family: str = Field(min_length=1)
    displayName: str | None = None
    description: str | None = None
    versions: list[OverlayVersionSpec] = Field(default_factory=list)



@dataclass(frozen=True)
class OverlayFile:
    path: PurePosixPath
    sha256: Digest
    arch: WineArch = WineArch.WIN64
    source: PurePosixPath | None = None

    @classmethod
    def fromSpec(cls, spec: OverlayFileSpec) -> OverlayFile:
        return cls(
            path=PurePosixPath(spec.path),
            sha256=spec.sha256.lower(),
            arch=spec.arch,
            source=PurePosixPath(spec.source) if spec.source else None,
        )

    @property
    def key(self) -> tuple[WineArch, str]:
        """Identity of the managed location, independent of any prefix."""
        return (self.arch, str(self.path).lower())

    def destination(self, prefix: Prefix) -> Path:
        return prefix.libraryDir(self.arch) / Path(*self.path.parts)

    def sourcePath(self, sourceDir: Path) -> Path:
        relative = self.source or self.path
        return Path(sourceDir) / Path(*relative.parts)



@dataclass(frozen=True)
class OverlayVersion:
    family: str
    version: SemVer
    files: tuple[OverlayFile, ...]
    url: str | None = None
    archiveSha256: Digest | None = None
    overrides: tuple[str, ...] = ()

    @classmethod
    def fromSpec(cls, family: str, spec: OverlayVersionSpec) -> OverlayVersion:
        files = tuple(OverlayFile.fromSpec(item) for item in spec.files)
        seen: set[tuple[WineArch, str]] = set()
        for item in files:
            if item.key in seen:
                raise ValueError(f"{family} {spec.version}: '{item.path}' ({item.arch}) listed twice")
            seen.add(item.key)
        return cls(
            family=family,
            version=parseSemVer(spec.version),
            files=files,
            url=spec.url,
            archiveSha256=spec.archiveSha256.lower() if spec.archiveSha256 else None,
            overrides=tuple(spec.overrides),
        )

    @property
    def digests(self) -> frozenset[Digest]:
        return frozenset(item.sha256 for item in self.files)

    @property
    def keys(self) -> frozenset[tuple[WineArch, str]]:
        return frozenset(item.key for item in self.files)

    def filesFor(self, prefix: Prefix) -> tuple[OverlayFile, ...]:
        """Files that apply to `prefix`; a win32 prefix has no place for 64-bit files."""
        if prefix.arch == WineArch.WIN32:
            return tuple(item for item in self.files if item.arch == WineArch.WIN32)
        return self.files

    def sameAs(self, other: OverlayVersion) -> bool:
        return self.family == other.family and self.version == other.version and self.files == other.files

    def __str__(self) -> str:
        return f"{self.family} {self.version}"



def backupPathOf(path: Path) -> Path:
    return path.with_name(path.name + BACKUP_SUFFIX)
