import pytest

from wincompat.core.errors import RuntimeCommandError, WincompatError
from wincompat.runtimes import boot
from wincompat.runtimes.overrides import DLL_OVERRIDES_KEY, OverrideMode, addOverride, deleteOverride
from wincompat.runtimes.wine import Wine

pytestmark = pytest.mark.posix


def _lines(path):
    return path.read_text(encoding="utf-8").splitlines()


def test_initPrefix_creates_directory_and_runs_wine_wineboot(fakeWineBinary, tmp_path):
    target = tmp_path / "games" / "new-pfx"
    wine = Wine.fromBinary(fakeWineBinary)

    result = boot.initPrefix(wine, target)

    assert result.returncode == 0
    assert target.is_dir()
    assert _lines(target / "boot.log") == ["wine wineboot -i"]


def test_sibling_wineboot_is_preferred(fakeWine, prefix, scriptWriter, fakeWineBinary):
    scriptWriter(
        fakeWineBinary.parent / "wineboot",
        '#!/bin/sh\nprintf "wineboot %s\\n" "$*" >> "$WINEPREFIX/boot.log"\n',
    )

    boot.updatePrefix(fakeWine)
    boot.stopProcesses(fakeWine)
    boot.stopProcesses(fakeWine, force=True)
    boot.restart(fakeWine)
    boot.shutdown(fakeWine)
    boot.endSession(fakeWine)

    assert _lines(prefix.path / "boot.log") == [
        "wineboot -u",
        "wineboot -k",
        "wineboot -f",
        "wineboot -r",
        "wineboot -s",
        "wineboot -e",
    ]


def test_failing_wineboot_raises_with_last_line(fakeWine, scriptWriter, fakeWineBinary):
    scriptWriter(fakeWineBinary.parent / "wineboot", "#!/bin/sh\necho starting\necho 'wineserver: broken'\nexit 2\n")

    with pytest.raises(RuntimeCommandError) as excInfo:
        boot.restart(fakeWine)
    assert excInfo.value.returncode == 2
    assert str(excInfo.value).endswith("wineserver: broken")

    result = boot.restart(fakeWine, check=False)
    assert result.returncode == 2


def test_prefix_required(fakeWineBinary):
    with pytest.raises(WincompatError):
        boot.updatePrefix(Wine.fromBinary(fakeWineBinary))


def test_add_and_delete_override(fakeWine, regLog):
    addOverride(fakeWine, "d3d11", [OverrideMode.NATIVE, "builtin"])
    addOverride(fakeWine, "dxgi")
    deleteOverride(fakeWine, "d3d11")

    assert _lines(regLog) == [
        f"add {DLL_OVERRIDES_KEY} /v d3d11 /d native,builtin /f",
        f"add {DLL_OVERRIDES_KEY} /v dxgi /d native /f",
        f"delete {DLL_OVERRIDES_KEY} /v d3d11 /f",
    ]


def test_override_failure(fakeWine, monkeypatch):
    monkeypatch.setenv("FAKE_WINE_FAIL", "1")
    with pytest.raises(RuntimeCommandError) as excInfo:
        addOverride(fakeWine, "d3d11")
    assert "ERROR: access denied" in str(excInfo.value)

    with pytest.raises(RuntimeCommandError):
        deleteOverride(fakeWine, "d3d11")


def test_unknown_override_mode(fakeWine):
    with pytest.raises(ValueError):
        addOverride(fakeWine, "d3d11", ["sometimes"])
