from pathlib import Path

import pytest

from wincompat.core.hashing import fingerprint
from wincompat.overlays.catalogue import OverlayCatalogue
from wincompat.overlays.installer import OverlayInstaller



class OverlayFactory:
    """
    Builds catalogue entries and their extracted sources on disk.

    `files` maps a library-relative path to its content, or to
    (content, arch) for a file that belongs to a specific architecture.
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self.families: dict[str, list[dict]] = {}

    def add(
        self,
        family: str,
        version: str,
        files: dict[str, bytes | tuple[bytes, str]],
        overrides: list[str] | None = None,
    ) -> Path:
        sourceDir = self.root / f"{family}-{version}"
        entries = []
        for name, value in files.items():
            content, arch = value if isinstance(value, tuple) else (value, "win64")
            source = f"{arch}/{name}"
            path = sourceDir / source
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
            entries.append({"path": name, "sha256": fingerprint(content), "arch": arch, "source": source})
        entry = {"version": version, "files": entries}
        if overrides:
            entry["overrides"] = overrides
        self.families.setdefault(family, []).append(entry)
        return sourceDir

    def catalogue(self) -> OverlayCatalogue:
        return OverlayCatalogue.fromMapping(
            [{"family": family, "versions": versions} for family, versions in self.families.items()]
        )

    def installer(self) -> OverlayInstaller:
        return OverlayInstaller(self.catalogue())



@pytest.fixture
def overlays(tmp_path: Path) -> OverlayFactory:
    return OverlayFactory(tmp_path / "sources")
