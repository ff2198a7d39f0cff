from dataclasses import replace

import pytest

from wincompat.prefix.prefix import Prefix, WineArch
from wincompat.runtimes.proton import Proton
from wincompat.runtimes.wine import WineLoader


@pytest.fixture
def bundle(tmp_path):
    root = tmp_path / "GE-Proton9-1"
    (root / "files" / "bin").mkdir(parents=True)
    return root


def test_bundle_wraps_its_own_wine(bundle, tmp_path):
    proton = Proton.fromBundle(bundle, tmp_path / "compat")

    wine = proton.innerWine
    assert wine.binary == bundle / "files" / "bin" / "wine64"
    assert wine.wineserver == bundle / "files" / "bin" / "wineserver"
    assert wine.loader == WineLoader.current()
    assert wine.arch is WineArch.WIN64
    assert proton.prefix.path == tmp_path / "compat" / "pfx"  # type: ignore[union-attr]


def test_environment_adds_steam_variables(bundle, tmp_path):
    proton = Proton.fromBundle(bundle, tmp_path / "compat").withSteamClient(tmp_path / "steam").withAppId(1234)

    env = proton.environment()

    assert env["STEAM_COMPAT_DATA_PATH"] == str(tmp_path / "compat")
    assert env["STEAM_COMPAT_CLIENT_INSTALL_PATH"] == str(tmp_path / "steam")
    assert env["SteamAppId"] == "1234"
    assert env["WINEPREFIX"] == str(tmp_path / "compat" / "pfx")
    assert env["WINELOADER"] == str(bundle / "files" / "bin" / "wine64")


def test_app_id_is_always_set(bundle):
    env = Proton.fromBundle(bundle).environment()
    assert env["SteamAppId"] == "0"
    assert "STEAM_COMPAT_DATA_PATH" not in env
    assert "WINEPREFIX" not in env


def test_withPrefix_accepts_compat_data_folder(bundle, tmp_path):
    # Not created yet: treated as the compat data folder
    proton = Proton.fromBundle(bundle).withPrefix(tmp_path / "new-compat")
    assert proton.protonPrefix == tmp_path / "new-compat"
    assert proton.prefix.path == tmp_path / "new-compat" / "pfx"  # type: ignore[union-attr]

    # Existing compat folder with a pfx child
    (tmp_path / "compat" / "pfx" / "drive_c").mkdir(parents=True)
    proton = Proton.fromBundle(bundle).withPrefix(tmp_path / "compat")
    assert proton.protonPrefix == tmp_path / "compat"


def test_withPrefix_accepts_wine_prefix(bundle, tmp_path):
    winePrefix = tmp_path / "compat" / "pfx"
    (winePrefix / "drive_c").mkdir(parents=True)

    proton = Proton.fromBundle(bundle).withPrefix(winePrefix)

    assert proton.protonPrefix == tmp_path / "compat"
    assert proton.prefix.path == winePrefix  # type: ignore[union-attr]


def test_launch_command_uses_proton_script(bundle):
    proton = Proton.fromBundle(bundle)
    assert proton.launchCommand("game.exe", ["-dx11"]) == [
        "python3", str(bundle / "proton"), "run", "game.exe", "-dx11",
    ]
    assert proton.withVerb("waitforexitandrun").launchCommand("game.exe")[2] == "waitforexitandrun"
    assert proton.blockingCommand(["reg", "add"]) == [str(bundle / "files" / "bin" / "wine64"), "reg", "add"]


def test_unknown_verb_rejected(bundle):
    with pytest.raises(ValueError):
        Proton(path=bundle, launchVerb="launch")  # type: ignore[arg-type]


def test_environment_for_explicit_compat_folder(bundle, tmp_path):
    compat = tmp_path / "compat"
    (compat / "pfx" / "drive_c").mkdir(parents=True)
    proton = Proton.fromBundle(bundle)

    env = proton.environment(Prefix(compat))
    assert env["STEAM_COMPAT_DATA_PATH"] == str(compat)
    assert env["WINEPREFIX"] == str(compat / "pfx")

    env = proton.environment(Prefix(compat / "pfx"))
    assert env["STEAM_COMPAT_DATA_PATH"] == str(compat)
    assert env["WINEPREFIX"] == str(compat / "pfx")


def test_inner_wine_is_rebuilt_when_cleared(bundle):
    proton = replace(Proton.fromBundle(bundle), wine=None)
    assert proton.innerWine.binary == bundle / "files" / "bin" / "wine64"
