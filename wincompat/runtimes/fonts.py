# wincompat/runtimes/fonts.py
from __future__ import annotations
import logging
import shutil
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol, runtime_checkable

from wincompat.core.errors import NotFoundError, OverlayIoError, WincompatError
from wincompat.prefix.prefix import Prefix
from wincompat.runtimes.base import Runtime
from wincompat.runtimes.overrides import regAdd

__all__ = [
    "ArchiveFetcher",
    "Corefont",
    "FontFile",
    "FontArchive",
    "COREFONT_MIRROR",
    "COREFONT_ARCHIVES",
    "FONT_REGISTRY_KEYS",
    "isFontInstalled",
    "registerFont",
    "installCorefont",
    "installCorefonts",
]

logger = logging.getLogger(__name__)

COREFONT_MIRROR = "https://mirrors.kernel.org/gentoo/distfiles/"

FONT_REGISTRY_KEYS: tuple[str, ...] = (
    "HKEY_LOCAL_MACHINE\\Software\\Microsoft\\Windows NT\\CurrentVersion\\Fonts",
    "HKEY_LOCAL_MACHINE\\Software\\Microsoft\\Windows\\CurrentVersion\\Fonts",
)



@runtime_checkable
class ArchiveFetcher(Protocol):
    """
    Downloads an archive and unpacks it into `destination`.
    Returns the extracted files. Supplied by the host application.
    """
    def fetch(self, url: str, destination: Path) -> list[Path]: ...



@dataclass(frozen=True)
class FontFile:
    archiveName: str  # name inside the archive
    fileName: str     # name in the prefix Fonts dir
    fontName: str     # registry value name



@dataclass(frozen=True)
class FontArchive:
    archive: str
    files: tuple[FontFile, ...]

    @property
    def url(self) -> str:
        return COREFONT_MIRROR + self.archive



class Corefont(str, Enum):
    """Microsoft core fonts; the value is the main .ttf name without extension."""
    ANDALE = "andalemo"
    ARIAL = "arial"
    COMIC_SANS = "comic"
    COURIER = "cour"
    GEORGIA = "georgia"
    IMPACT = "impact"
    TIMES = "times"
    TREBUCHET = "trebuc"
    VERDANA = "verdana"
    WEBDINGS = "webdings"

    @property
    def archives(self) -> tuple[FontArchive, ...]:
        return COREFONT_ARCHIVES[self]

    def isInstalled(self, prefix: Prefix) -> bool:
        return isFontInstalled(prefix, self.value)



def _archive(name: str, *files: tuple[str, str, str]) -> FontArchive:
    return FontArchive(name, tuple(FontFile(*entry) for entry in files))



COREFONT_ARCHIVES: dict[Corefont, tuple[FontArchive, ...]] = {
    Corefont.ANDALE: (
        _archive("andale32.exe", ("AndaleMo.TTF", "andalemo.ttf", "Andale Mono")),
    ),
    Corefont.ARIAL: (
        _archive(
            "arial32.exe",
            ("Arial.TTF", "arial.ttf", "Arial"),
            ("Arialbd.TTF", "arialbd.ttf", "Arial Bold"),
            ("Ariali.TTF", "ariali.ttf", "Arial Italic"),
            ("Arialbi.TTF", "arialbi.ttf", "Arial Bold Italic"),
        ),
        _archive("arialb32.exe", ("AriBlk.TTF", "ariblk.ttf", "Arial Black")),
    ),
    Corefont.COMIC_SANS: (
        _archive(
            "comic32.exe",
            ("Comic.TTF", "comic.ttf", "Comic Sans MS"),
            ("Comicbd.TTF", "comicbd.ttf", "Comic Sans MS Bold"),
        ),
    ),
    Corefont.COURIER: (
        _archive(
            "courie32.exe",
            ("cour.ttf", "cour.ttf", "Courier New"),
            ("courbd.ttf", "courbd.ttf", "Courier New Bold"),
            ("couri.ttf", "couri.ttf", "Courier New Italic"),
            ("courbi.ttf", "courbi.ttf", "Courier New Bold Italic"),
        ),
    ),
    Corefont.GEORGIA: (
        _archive(
            "georgi32.exe",
            ("Georgia.TTF", "georgia.ttf", "Georgia"),
            ("Georgiab.TTF", "georgiab.ttf", "Georgia Bold"),
            ("Georgiai.TTF", "georgiai.ttf", "Georgia Italic"),
            ("Georgiaz.TTF", "georgiaz.ttf", "Georgia Bold Italic"),
        ),
    ),
    Corefont.IMPACT: (
        _archive("impact32.exe", ("Impact.TTF", "impact.ttf", "Impact")),
    ),
    Corefont.TIMES: (
        _archive(
            "times32.exe",
            ("Times.TTF", "times.ttf", "Times New Roman"),
            ("Timesbd.TTF", "timesbd.ttf", "Times New Roman Bold"),
            ("Timesi.TTF", "timesi.ttf", "Times New Roman Italic"),
            ("Timesbi.TTF", "timesbi.ttf", "Times New Roman Bold Italic"),
        ),
    ),
    Corefont.TREBUCHET: (
        _archive(
            "trebuc32.exe",
            ("trebuc.ttf", "trebuc.ttf", "Trebuchet MS"),
            ("Trebucbd.ttf", "trebucbd.ttf", "Trebuchet MS Bold"),
            ("trebucit.ttf", "trebucit.ttf", "Trebuchet MS Italic"),
            ("trebucbi.ttf", "trebucbi.ttf", "Trebuchet MS Bold Italic"),
        ),
    ),
    Corefont.VERDANA: (
        _archive(
            "verdan32.exe",
            ("Verdana.TTF", "verdana.ttf", "Verdana"),
            ("Verdanab.TTF", "verdanab.ttf", "Verdana Bold"),
            ("Verdanai.TTF", "verdanai.ttf", "Verdana Italic"),
            ("Verdanaz.TTF", "verdanaz.ttf", "Verdana Bold Italic"),
        ),
    ),
    Corefont.WEBDINGS: (
        _archive("webdin32.exe", ("Webdings.TTF", "webdings.ttf", "Webdings")),
    ),
}



def isFontInstalled(prefix: Prefix, fontFile: str) -> bool:
    """
    True if `fontFile` sits in the prefix fonts dir, as given or with a
    .ttf / .TTF extension. Both `Fonts` and `fonts` are checked.
    """
    for folder in (prefix.windowsDir / "Fonts", prefix.windowsDir / "fonts"):
        for name in (fontFile, f"{fontFile}.ttf", f"{fontFile}.TTF"):
            if (folder / name).exists():
                return True
    return False



def registerFont(runtime: Runtime, fontFile: str, fontName: str, *, prefix: Prefix | None = None) -> None:
    """Register a file already present in the fonts dir under both font registry keys."""
    for key in FONT_REGISTRY_KEYS:
        regAdd(runtime, key, fontName, fontFile, action="register font", prefix=prefix)



def _findExtracted(extracted: list[Path], workDir: Path, archiveName: str) -> Path:
    for path in extracted:
        if path.name == archiveName:
            return path
    lowered = archiveName.lower()
    for path in extracted:
        if path.name.lower() == lowered:
            return path
    candidate = workDir / archiveName
    if candidate.exists():
        return candidate
    raise NotFoundError(candidate, "font file")



def _targetPrefix(runtime: Runtime, prefix: Prefix | None) -> Prefix:
    target = prefix or runtime.prefix
    if target is None:
        raise WincompatError("No prefix given and the runtime has none configured")
    return target



def installCorefont(
    runtime: Runtime,
    corefont: Corefont | str,
    fetcher: ArchiveFetcher,
    *,
    prefix: Prefix | None = None,
) -> list[Path]:
    """
    Fetch the font's archive(s) through `fetcher`, copy the fonts into the
    prefix and register them. Returns the installed paths.
    """
    font = Corefont(corefont)
    target = _targetPrefix(runtime, prefix)
    fontDir = target.fontDir
    installed: list[Path] = []

    for archive in font.archives:
        with tempfile.TemporaryDirectory(prefix=f"wincompat-{archive.archive}-") as tmp:
            workDir = Path(tmp)
            logger.info("Fetching %s", archive.url)
            extracted = [Path(path) for path in fetcher.fetch(archive.url, workDir)]

            for entry in archive.files:
                source = _findExtracted(extracted, workDir, entry.archiveName)
                destination = fontDir / entry.fileName
                try:
                    fontDir.mkdir(parents=True, exist_ok=True)
                    shutil.copyfile(source, destination)
                except OSError as err:
                    raise OverlayIoError(destination, "copy font", err) from err
                registerFont(runtime, entry.fileName, entry.fontName, prefix=target)
                installed.append(destination)

    logger.info("Installed font %s into '%s'", font.value, target)
    return installed



def installCorefonts(
    runtime: Runtime,
    fetcher: ArchiveFetcher,
    *,
    prefix: Prefix | None = None,
    skipInstalled: bool = False,
) -> list[Path]:
    installed: list[Path] = []
    target = _targetPrefix(runtime, prefix)
    for font in Corefont:
        if skipInstalled and font.isInstalled(target):
            logger.debug("Font %s already installed, skipping", font.value)
            continue
        installed.extend(installCorefont(runtime, font, fetcher, prefix=target))
    return installed
