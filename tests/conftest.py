import os
import stat
import sys
from pathlib import Path

import pytest

from wincompat.app.paths import SETTINGS_ENV_VAR
from wincompat.app.settings import reloadSettings
from wincompat.core.logging import clearLogContext
from wincompat.prefix.prefix import Prefix, WineArch
from wincompat.runtimes.wine import Wine



# Stands in for a wine build: answers --version, records reg/wineboot calls
# under $WINEPREFIX, and execs anything else so supervised processes are real.
FAKE_WINE = """#!/bin/sh
case "$1" in
    --version)
        echo "wine-9.0 (Staging)"
        ;;
    reg)
        shift
        if [ -n "$FAKE_WINE_FAIL" ]; then
            echo "reg: starting"
            echo "ERROR: access denied"
            exit 1
        fi
        printf "%s\\n" "$*" >> "$WINEPREFIX/reg.log"
        ;;
    wineboot)
        shift
        printf "wine wineboot %s\\n" "$*" >> "$WINEPREFIX/boot.log"
        ;;
    winepath)
        echo "$WINEPREFIX/drive_c/windows"
        ;;
    *)
        exec "$@"
        ;;
esac
"""



def writeScript(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path



def pytest_configure(config: pytest.Config) -> None:
    if sys.flags.optimize:
        raise RuntimeError("Assertions are disabled (optimize > 0)")
    config.addinivalue_line("markers", "posix: test spawns real POSIX processes")



def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if os.name == "posix":
        return
    skip = pytest.mark.skip(reason="POSIX only")
    for item in items:
        if "posix" in item.keywords:
            item.add_marker(skip)



@pytest.fixture(autouse=True)
def isolatedSettings(tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch):
    """Every test starts from the built-in defaults, never the user's settings file."""
    settingsFile = tmp_path_factory.mktemp("settings") / "settings.json5"
    monkeypatch.setenv(SETTINGS_ENV_VAR, str(settingsFile))
    reloadSettings()
    clearLogContext()
    yield settingsFile
    monkeypatch.delenv(SETTINGS_ENV_VAR, raising=False)
    reloadSettings()
    clearLogContext()



@pytest.fixture
def prefixDir(tmp_path: Path) -> Path:
    root = tmp_path / "pfx"
    for sub in ("drive_c/windows/system32", "drive_c/windows/syswow64", "drive_c/windows/Fonts"):
        (root / sub).mkdir(parents=True)
    return root



@pytest.fixture
def prefix(prefixDir: Path) -> Prefix:
    return Prefix(prefixDir, WineArch.WIN64)



@pytest.fixture
def fakeWineBinary(tmp_path: Path) -> Path:
    return writeScript(tmp_path / "wine-build" / "bin" / "wine", FAKE_WINE)



@pytest.fixture
def fakeWine(fakeWineBinary: Path, prefix: Prefix) -> Wine:
    return Wine.fromBinary(fakeWineBinary).withArch("win64").withPrefix(prefix)



@pytest.fixture
def regLog(prefix: Prefix) -> Path:
    return prefix.path / "reg.log"



@pytest.fixture
def scriptWriter():
    return writeScript
