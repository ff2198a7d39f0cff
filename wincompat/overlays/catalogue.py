# wincompat/overlays/catalogue.py
from __future__ import annotations
import logging
import os
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import json5
from pydantic import ValidationError

from wincompat.core.errors import CatalogueError
from wincompat.core.hashing import Digest
from wincompat.overlays.manifest import OverlayFamilySpec, OverlayFile, OverlayVersion
from wincompat.prefix.prefix import WineArch
from wincompat.semver.semver import SemVer, parseSemVer, parseSemVerRequirement, pickBest, sortNewestFirst

__all__ = ["OverlayCatalogue", "MANIFEST_SUFFIXES"]

logger = logging.getLogger(__name__)

MANIFEST_SUFFIXES: tuple[str, ...] = (".json5", ".json")



class OverlayCatalogue:
    """
    Reference data for overlay families: every known version and the
    fingerprint of each file it places. Immutable once built.

    Manifest shape (JSON5), one family per object:

        {
          family: "dxvk",
          versions: [
            { version: "2.3.1", url: "...", files: [
                { path: "d3d11.dll", sha256: "...", arch: "win64", source: "x64/d3d11.dll" },
            ]},
          ],
        }

    A manifest file may also hold a list of such objects.
    """

    def __init__(self, versions: Iterable[OverlayVersion] = ()) -> None:
        families: dict[str, list[OverlayVersion]] = {}
        for version in versions:
            bucket = families.setdefault(version.family, [])
            if any(item.version == version.version for item in bucket):
                raise CatalogueError(f"Duplicate overlay version {version}")
            bucket.append(version)
        self._families: dict[str, tuple[OverlayVersion, ...]] = {
            name: tuple(item for _ver, item in sortNewestFirst((item.version, item) for item in bucket))
            for name, bucket in families.items()
        }
        self._knownDigests: frozenset[Digest] = frozenset(
            digest for bucket in self._families.values() for item in bucket for digest in item.digests
        )

    # ------------------------------------------------------------------ #
    # Loading
    # ------------------------------------------------------------------ #

    @classmethod
    def fromSpecs(cls, specs: Iterable[OverlayFamilySpec]) -> OverlayCatalogue:
        versions: list[OverlayVersion] = []
        for spec in specs:
            for versionSpec in spec.versions:
                try:
                    versions.append(OverlayVersion.fromSpec(spec.family, versionSpec))
                except ValueError as err:
                    raise CatalogueError(str(err)) from err
        return cls(versions)

    @classmethod
    def fromMapping(cls, data: Mapping[str, Any] | list[Mapping[str, Any]], *, source: str = "<memory>") -> OverlayCatalogue:
        return cls.fromSpecs(_validateSpecs(data, source))

    @classmethod
    def fromFile(cls, path: str | os.PathLike[str]) -> OverlayCatalogue:
        return cls.fromSpecs(_readManifest(Path(path)))

    @classmethod
    def fromDirectory(cls, path: str | os.PathLike[str]) -> OverlayCatalogue:
        """Load every *.json5 / *.json manifest in `path` (not recursive), in name order."""
        root = Path(path)
        if not root.is_dir():
            raise CatalogueError(f"Manifest directory not found: {root}")
        specs: list[OverlayFamilySpec] = []
        for file in sorted(root.iterdir()):
            if file.is_file() and file.suffix.lower() in MANIFEST_SUFFIXES:
                specs.extend(_readManifest(file))
        logger.debug("Loaded %d overlay manifest(s) from '%s'", len(specs), root)
        return cls.fromSpecs(specs)

    def merged(self, other: OverlayCatalogue) -> OverlayCatalogue:
        return OverlayCatalogue([*self.allVersions(), *other.allVersions()])

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def families(self) -> list[str]:
        return sorted(self._families)

    def __contains__(self, family: object) -> bool:
        return family in self._families

    def allVersions(self) -> list[OverlayVersion]:
        return [item for bucket in self._families.values() for item in bucket]

    def versions(self, family: str) -> list[OverlayVersion]:
        """Known versions of `family`, newest first."""
        try:
            return list(self._families[family])
        except KeyError:
            raise CatalogueError(f"Unknown overlay family '{family}'") from None

    def get(self, family: str, version: SemVer | str) -> OverlayVersion:
        wanted = version if isinstance(version, SemVer) else parseSemVer(version)
        for item in self.versions(family):
            if item.version == wanted:
                return item
        raise CatalogueError(f"Unknown version {wanted} of overlay family '{family}'")

    def latest(self, family: str) -> OverlayVersion:
        versions = self.versions(family)
        if not versions:
            raise CatalogueError(f"Overlay family '{family}' has no versions")
        return versions[0]

    def resolve(self, family: str, requirement: str | None = None) -> OverlayVersion:
        """Best version of `family` for a semver requirement ("^2.1", ">=2.0 <3", ...)."""
        try:
            parsed = parseSemVerRequirement(requirement)
        except ValueError as err:
            raise CatalogueError(f"Invalid version requirement {requirement!r}: {err}") from err
        best = pickBest(((item.version, item) for item in self.versions(family)), parsed)
        if best is None:
            raise CatalogueError(f"No version of '{family}' satisfies {requirement!r}")
        return best[1]

    def knownDigests(self, family: str | None = None) -> frozenset[Digest]:
        """Digests of every catalogued overlay file (of one family, or of all)."""
        if family is None:
            return self._knownDigests
        return frozenset(digest for item in self.versions(family) for digest in item.digests)

    def managedFiles(self, family: str) -> list[OverlayFile]:
        """One entry per location any version of `family` writes to, newest version first."""
        seen: dict[tuple[WineArch, str], OverlayFile] = {}
        for item in self.versions(family):
            for file in item.files:
                seen.setdefault(file.key, file)
        return list(seen.values())



def _validateSpecs(data: Any, source: str) -> list[OverlayFamilySpec]:
    entries = data if isinstance(data, list) else [data]
    specs: list[OverlayFamilySpec] = []
    for entry in entries:
        try:
            specs.append(OverlayFamilySpec.model_validate(entry))
        except ValidationError as err:
            raise CatalogueError(f"Invalid overlay manifest {source}: {err}") from err
    return specs



def _readManifest(path: Path) -> list[OverlayFamilySpec]:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as err:
        raise CatalogueError(f"Manifest not found: {path}") from err
    except OSError as err:
        raise CatalogueError(f"Failed to read manifest '{path}': {err}") from err
    try:
        data = json5.loads(text)
    except ValueError as err:
        raise CatalogueError(f"Failed to parse manifest '{path}': {err}") from err
    return _validateSpecs(data, str(path))
