# wincompat/overlays/installer.py
from __future__ import annotations
import logging
import os
import shutil
from collections.abc import Iterable
from pathlib import Path

from wincompat.core.errors import (
    CatalogueError,
    IntegrityError,
    NotFoundError,
    OverlayIoError,
    RuntimeCommandError,
    WincompatError,
)
from wincompat.core.hashing import Digest, fingerprintFile
from wincompat.core.logging import setLogContext
from wincompat.overlays.catalogue import OverlayCatalogue
from wincompat.overlays.manifest import OverlayFile, OverlayVersion, backupPathOf
from wincompat.overlays.results import (
    Applied,
    InstallOptions,
    InstallOutcome,
    InstallResult,
    NotApplied,
    OverlayStatus,
    UninstallOptions,
    UninstallOutcome,
    UninstallResult,
)
from wincompat.prefix.prefix import Prefix, WineArch, asPrefix
from wincompat.runtimes.base import Runtime
from wincompat.runtimes.overrides import OverrideMode, addOverride, deleteOverride

__all__ = ["OverlayInstaller", "TEMP_SUFFIX"]

logger = logging.getLogger(__name__)

# In-flight copies; renamed over the final name once complete
TEMP_SUFFIX = ".wincompat-tmp"



def _atomicCopy(source: Path, destination: Path, operation: str, *, preserve: bool = False) -> None:
    tmp = destination.with_name(f".{destination.name}{TEMP_SUFFIX}")
    try:
        if preserve:
            shutil.copy2(source, tmp)
        else:
            shutil.copyfile(source, tmp)
        os.replace(tmp, destination)
    except OSError as err:
        try:
            tmp.unlink(missing_ok=True)
        except OSError as cleanupErr:
            logger.warning("Failed to remove temporary file '%s': %s", tmp, cleanupErr)
        raise OverlayIoError(destination, operation, err) from err



def _exists(path: Path) -> bool:
    return path.exists() or path.is_symlink()



class OverlayInstaller:
    """
    Install / uninstall / status over versioned overlay files in a prefix.

    Nothing is recorded about what was installed: state is always derived
    by fingerprinting the library directory against the catalogue. The
    only persisted convention is the `.old` backup beside each file an
    install replaced.

    Not thread-safe per prefix; callers serialise installs and stop the
    prefix's processes first.
    """

    def __init__(self, catalogue: OverlayCatalogue) -> None:
        self.catalogue = catalogue

    # ------------------------------------------------------------------ #
    # Status
    # ------------------------------------------------------------------ #

    def _digestOf(self, path: Path, cache: dict[Path, Digest | None]) -> Digest | None:
        if path in cache:
            return cache[path]
        try:
            digest: Digest | None = fingerprintFile(path)
        except NotFoundError:
            digest = None
        cache[path] = digest
        return digest

    def status(self, prefix: Prefix | str | os.PathLike[str], family: str) -> OverlayStatus:
        """
        First version of `family` (newest first) whose every file is present
        with the catalogued fingerprint. Missing files just don't match;
        OverlayIoError when one exists but can't be read.
        """
        target = asPrefix(prefix)
        cache: dict[Path, Digest | None] = {}
        for version in self.catalogue.versions(family):
            files = version.filesFor(target)
            if files and all(self._digestOf(file.destination(target), cache) == file.sha256 for file in files):
                return Applied(version)
        return NotApplied(family)

    # ------------------------------------------------------------------ #
    # Install
    # ------------------------------------------------------------------ #

    def _preflight(self, files: tuple[OverlayFile, ...], sourceDir: Path) -> list[tuple[OverlayFile, Path]]:
        """Check every source file before anything in the prefix is touched."""
        sources: list[tuple[OverlayFile, Path]] = []
        for file in files:
            source = file.sourcePath(sourceDir)
            actual = fingerprintFile(source)
            if actual != file.sha256:
                raise IntegrityError(source, file.sha256, actual)
            sources.append((file, source))
        return sources

    def _backupOriginal(self, destination: Path, known: frozenset[Digest]) -> bool:
        """
        Preserve `destination` as `<name>.old` unless it is overlay content.
        Returns True when a backup was written.
        """
        liveDigest = fingerprintFile(destination)
        if liveDigest in known:
            return False

        backup = backupPathOf(destination)
        if _exists(backup):
            backupDigest = fingerprintFile(backup)
            if backupDigest not in known:
                if backupDigest != liveDigest:
                    logger.warning("Keeping existing backup '%s'; the live file differs from it", backup)
                return False
            logger.info("Backup '%s' holds overlay content, replacing it with the live original", backup)

        _atomicCopy(destination, backup, "back up", preserve=True)
        return True

    def _retire(self, destination: Path) -> str | None:
        """Put the original back, or drop the file when there was none."""
        backup = backupPathOf(destination)
        try:
            if _exists(backup):
                os.replace(backup, destination)
                return "restored"
            if _exists(destination):
                destination.unlink()
                return "removed"
        except OSError as err:
            raise OverlayIoError(destination, "restore", err) from err
        return None

    def _managedFor(self, target: Prefix, family: str) -> list[OverlayFile]:
        """Every location the family has ever used that exists in a prefix of `target`'s arch."""
        return [
            file for file in self.catalogue.managedFiles(family)
            if target.arch == WineArch.WIN64 or file.arch == WineArch.WIN32
        ]

    def _staleFiles(self, target: Prefix, version: OverlayVersion, current: OverlayStatus) -> list[OverlayFile]:
        """
        Files of an earlier version that `version` won't overwrite.

        With a recognised version applied these are its files. Otherwise
        (a corrupted or partial install) every managed location is checked:
        it is stale when it has a backup or holds content of the family.
        """
        if isinstance(current, Applied):
            if current.version.sameAs(version):
                return []
            logger.info("Replacing %s with %s in '%s'", current.version, version, target)
            return [file for file in current.version.filesFor(target) if file.key not in version.keys]

        if version.family not in self.catalogue:
            return []
        familyDigests = self.catalogue.knownDigests(version.family)
        stale: list[OverlayFile] = []
        for file in self._managedFor(target, version.family):
            if file.key in version.keys:
                continue
            destination = file.destination(target)
            if _exists(backupPathOf(destination)):
                stale.append(file)
            elif _exists(destination) and self._digestOf(destination, {}) in familyDigests:
                stale.append(file)
        if stale:
            logger.info("Retiring %d leftover file(s) of %s in '%s'", len(stale), version.family, target)
        return stale

    def install(
        self,
        prefix: Prefix | str | os.PathLike[str],
        version: OverlayVersion,
        options: InstallOptions,
    ) -> InstallResult:
        """
        Place `version`'s files into the prefix.

        Raises IntegrityError / NotFoundError when a source file is wrong or
        missing, OverlayIoError when the first write fails. Later failures,
        including a failed DLL override once the files are in place, return
        PARTIALLY_APPLIED; nothing is rolled back.
        """
        target = asPrefix(prefix)
        setLogContext(prefix=str(target), family=version.family)

        current: OverlayStatus = NotApplied(version.family)
        if version.family in self.catalogue:
            current = self.status(target, version.family)
        if isinstance(current, Applied) and current.version.sameAs(version) and not options.force:
            logger.info("%s already applied to '%s'", version, target)
            return InstallResult(InstallOutcome.ALREADY_APPLIED, version)

        files = version.filesFor(target)
        if not files:
            raise CatalogueError(f"{version} has no files for a {target.arch} prefix")
        sources = self._preflight(files, options.sourceDir)
        known = self.catalogue.knownDigests() | version.digests

        stale = self._staleFiles(target, version, current)

        written: list[Path] = []
        backedUp: list[Path] = []
        retired: list[Path] = []
        currentPath: Path = target.path

        try:
            for file in stale:
                currentPath = file.destination(target)
                if self._retire(currentPath):
                    retired.append(currentPath)

            for file, source in sources:
                destination = file.destination(target)
                currentPath = destination
                try:
                    destination.parent.mkdir(parents=True, exist_ok=True)
                except OSError as err:
                    raise OverlayIoError(destination.parent, "create directory", err) from err

                if _exists(destination) and self._backupOriginal(destination, known):
                    backedUp.append(backupPathOf(destination))
                _atomicCopy(source, destination, "write")
                written.append(destination)

        except WincompatError as err:
            if not (written or backedUp or retired):
                if isinstance(err, OverlayIoError):
                    raise
                raise OverlayIoError(currentPath, "install", err) from err
            logger.error("Installing %s into '%s' stopped at '%s': %s", version, target, currentPath, err)
            return InstallResult(
                InstallOutcome.PARTIALLY_APPLIED,
                version,
                written=tuple(written),
                backedUp=tuple(backedUp),
                retired=tuple(retired),
                failedPath=currentPath,
                error=err,
            )

        overrides: list[str] = []
        if options.runtime is not None:
            try:
                if isinstance(current, Applied):
                    self._dropOverrides(
                        options.runtime, target, [name for name in current.version.overrides if name not in version.overrides]
                    )
                for name in version.overrides:
                    addOverride(options.runtime, name, (OverrideMode.NATIVE,), prefix=target)
                    overrides.append(name)
            except WincompatError as err:
                logger.error("Files of %s are in '%s' but setting DLL overrides failed: %s", version, target, err)
                return InstallResult(
                    InstallOutcome.PARTIALLY_APPLIED,
                    version,
                    written=tuple(written),
                    backedUp=tuple(backedUp),
                    retired=tuple(retired),
                    overrides=tuple(overrides),
                    error=err,
                )
        elif version.overrides:
            logger.warning("No runtime given; DLL overrides for %s were not set: %s", version, ", ".join(version.overrides))

        logger.info("Installed %s into '%s' (%d file(s), %d backup(s))", version, target, len(written), len(backedUp))
        return InstallResult(
            InstallOutcome.APPLIED,
            version,
            written=tuple(written),
            backedUp=tuple(backedUp),
            retired=tuple(retired),
            overrides=tuple(overrides),
        )

    # ------------------------------------------------------------------ #
    # Uninstall
    # ------------------------------------------------------------------ #

    def _cleanupResidual(
        self,
        destination: Path,
        familyDigests: frozenset[Digest],
        force: bool,
        restored: list[Path],
        removed: list[Path],
    ) -> None:
        backup = backupPathOf(destination)
        if _exists(backup):
            self._retire(destination)
            restored.append(destination)
            return
        if not _exists(destination):
            return
        if force or fingerprintFile(destination) in familyDigests:
            try:
                destination.unlink()
            except OSError as err:
                raise OverlayIoError(destination, "remove", err) from err
            removed.append(destination)

    def _dropOverrides(self, runtime: Runtime | None, target: Prefix, names: Iterable[str]) -> tuple[str, ...]:
        """
        Delete DLL overrides an install set. Returns the ones removed; a value
        that can't be deleted (never set, or the install ran without a
        runtime) is logged and left out.
        """
        if runtime is None:
            return ()
        dropped: list[str] = []
        for name in names:
            try:
                deleteOverride(runtime, name, prefix=target)
            except RuntimeCommandError as err:
                logger.warning("DLL override %s not removed from '%s': %s", name, target, err)
                continue
            dropped.append(name)
        return tuple(dropped)

    def uninstall(
        self,
        prefix: Prefix | str | os.PathLike[str],
        family: str,
        options: UninstallOptions | None = None,
    ) -> UninstallResult:
        """
        Remove the applied version of `family`: restore each backup, or
        delete the file when there was no original.

        With nothing applied, leftover backups at the family's paths are
        still restored (and overlay files beside them removed), so a
        corrupted install can be undone.
        """
        target = asPrefix(prefix)
        options = options or UninstallOptions()
        setLogContext(prefix=str(target), family=family)

        familyDigests = self.catalogue.knownDigests(family)
        managed = self._managedFor(target, family)
        current = self.status(target, family)
        restored: list[Path] = []
        removed: list[Path] = []

        if isinstance(current, Applied):
            handled = current.version.keys
            for file in current.version.filesFor(target):
                destination = file.destination(target)
                action = self._retire(destination)
                if action == "restored":
                    restored.append(destination)
                elif action == "removed":
                    removed.append(destination)
            if options.force:
                for file in managed:
                    if file.key not in handled:
                        self._cleanupResidual(file.destination(target), familyDigests, True, restored, removed)
            overrides = self._dropOverrides(options.runtime, target, current.version.overrides)
            logger.info("Removed %s from '%s'", current.version, target)
            return UninstallResult(UninstallOutcome.REMOVED, family, current.version, tuple(restored), tuple(removed), overrides)

        hasBackups = any(_exists(backupPathOf(file.destination(target))) for file in managed)
        if not hasBackups and not options.force:
            logger.debug("%s is not applied to '%s'", family, target)
            return UninstallResult(UninstallOutcome.NOT_APPLIED, family)

        for file in managed:
            self._cleanupResidual(file.destination(target), familyDigests, options.force, restored, removed)

        if not (restored or removed):
            return UninstallResult(UninstallOutcome.NOT_APPLIED, family)
        logger.info(
            "Cleaned up leftovers of %s in '%s' (%d restored, %d removed)",
            family, target, len(restored), len(removed),
        )
        overrides = self._dropOverrides(
            options.runtime,
            target,
            sorted({name for version in self.catalogue.versions(family) for name in version.overrides}),
        )
        return UninstallResult(UninstallOutcome.REMOVED, family, None, tuple(restored), tuple(removed), overrides)
