"""Steam appmanifest file handling"""
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from branchkeeper import settings
from branchkeeper.exceptions import MalformedManifestError
from branchkeeper.models import ALTERNATE_BETA_BRANCH, ALTERNATE_BRANCH, BETA_BRANCH, MAIN_BRANCH
from branchkeeper.util.log import logger
from branchkeeper.util.steam.vdf import vdf_loads
from branchkeeper.util.system import fix_path_case, path_exists

APP_STATE_FLAGS = [
    "Invalid",
    "Uninstalled",
    "Update Required",
    "Fully Installed",
    "Encrypted",
    "Locked",
    "Files Missing",
    "AppRunning",
    "Files Corrupt",
    "Update Running",
    "Update Paused",
    "Update Started",
    "Uninstalling",
    "Backup Running",
    "Reconfiguring",
    "Validating",
    "Adding Files",
    "Preallocating",
    "Downloading",
    "Staging",
    "Committing",
    "Update Stopping",
]

# Steam beta keys and the managed branch they install
BETA_KEY_BRANCHES = {
    "beta": BETA_BRANCH,
    "alternate": ALTERNATE_BRANCH,
    "alternate-beta": ALTERNATE_BETA_BRANCH,
    "alternatebeta": ALTERNATE_BETA_BRANCH,
}


@dataclass
class ManifestRecord:
    """The fields of an app manifest the branch tracking cares about.

    Numeric fields that can't be read are set to 0 and the reason is kept in
    field_errors, keyed by the manifest field name.
    """

    app_id: str = ""
    build_id: int = 0
    name: str = ""
    state_flags: int = 0
    last_updated: int = 0
    install_dir: str = ""
    beta_key: str = ""
    field_errors: Dict[str, str] = field(default_factory=dict)

    @property
    def build_id_string(self) -> str:
        """The build id as stored in the configuration, empty when unknown"""
        return str(self.build_id) if self.build_id else ""

    @property
    def states(self) -> List[str]:
        """Return the states of a Steam game."""
        states = []
        state_flags = bin(self.state_flags)[:1:-1]
        for index, flag in enumerate(state_flags):
            if flag == "1" and index + 1 < len(APP_STATE_FLAGS):
                states.append(APP_STATE_FLAGS[index + 1])
        return states

    def is_installed(self) -> bool:
        return "Fully Installed" in self.states


def get_entry_case_insensitive(section: Dict[str, Any], key: str) -> Any:
    """Fetch a value from a VDF section in a case insensitive way"""
    key = key.lower()
    for name, value in section.items():
        if name.lower() == key:
            return value
    return None


def _read_unsigned(record: ManifestRecord, section: Dict[str, Any], key: str) -> int:
    value = get_entry_case_insensitive(section, key)
    if value is None:
        return 0
    text = value.strip() if isinstance(value, str) else ""
    if text.isascii() and text.isdigit():
        return int(text)
    record.field_errors[key] = "%r is not an unsigned integer" % (value,)
    logger.warning("Invalid %s in app manifest: %r", key, value)
    return 0


def _read_string(record: ManifestRecord, section: Dict[str, Any], key: str) -> str:
    value = get_entry_case_insensitive(section, key)
    if value is None:
        return ""
    if not isinstance(value, str):
        record.field_errors[key] = "expected a value, found a block"
        return ""
    return value.strip()


def parse_manifest(content: Union[str, bytes]) -> ManifestRecord:
    """Parse the text of an appmanifest_<appid>.acf file.

    Raises MalformedManifestError when neither appid nor buildid is present.
    """
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")
    content = content.lstrip("\ufeff")
    data = vdf_loads(content)

    app_state = get_entry_case_insensitive(data, "AppState")
    if not isinstance(app_state, dict):
        app_state = data

    if get_entry_case_insensitive(app_state, "appid") is None and get_entry_case_insensitive(app_state, "buildid") is None:
        raise MalformedManifestError()

    record = ManifestRecord()
    record.app_id = _read_string(record, app_state, "appid")
    record.build_id = _read_unsigned(record, app_state, "buildid")
    record.state_flags = _read_unsigned(record, app_state, "StateFlags")
    record.last_updated = _read_unsigned(record, app_state, "LastUpdated")
    record.install_dir = _read_string(record, app_state, "installdir")

    user_config = get_entry_case_insensitive(app_state, "UserConfig")
    if not isinstance(user_config, dict):
        user_config = {}
    mounted_config = get_entry_case_insensitive(app_state, "MountedConfig")
    if not isinstance(mounted_config, dict):
        mounted_config = {}

    record.name = _read_string(record, app_state, "name") or _read_string(record, user_config, "name")
    record.beta_key = _read_string(record, user_config, "BetaKey") or _read_string(record, mounted_config, "BetaKey")
    return record


def read_manifest(appmanifest_path: str) -> ManifestRecord:
    """Read and parse a manifest file. OSError is left to the caller."""
    with open(appmanifest_path, "r", encoding="utf-8", errors="replace") as appmanifest_file:
        content = appmanifest_file.read()
    return parse_manifest(content)


def get_appmanifest_filename(appid: str = settings.STEAM_APP_ID) -> str:
    return "appmanifest_%s.acf" % appid


def get_appmanifest_path(steamapps_path: str, appid: str = settings.STEAM_APP_ID) -> str:
    """Given the steam apps path and appid, return the path of its appmanifest"""
    if not steamapps_path:
        raise ValueError("steamapps_path is mandatory")
    if not appid:
        raise ValueError("Missing mandatory appid")
    return os.path.join(steamapps_path, get_appmanifest_filename(appid))


def find_appmanifest(
    steam_library_path: Optional[str], game_install_path: Optional[str], appid: str = settings.STEAM_APP_ID
) -> Optional[str]:
    """Locate the live app manifest of the game.

    The library path may point at the library root or at its steamapps
    folder; the game install path sits in <steamapps>/common/<installdir>.
    """
    filename = get_appmanifest_filename(appid)
    candidates = []
    if steam_library_path:
        candidates.append(os.path.join(steam_library_path, "steamapps", filename))
        candidates.append(os.path.join(steam_library_path, filename))
    if game_install_path:
        candidates.append(os.path.normpath(os.path.join(game_install_path, "..", "..", filename)))
    for candidate in candidates:
        path = fix_path_case(candidate)
        if path_exists(path):
            return path
    logger.debug("No app manifest found in %s", ", ".join(candidates))
    return None


def branch_for_beta_key(beta_key: Optional[str]) -> str:
    """Map a Steam beta key to the managed branch it installs"""
    if not beta_key:
        return MAIN_BRANCH
    return BETA_KEY_BRANCHES.get(beta_key.strip().lower(), MAIN_BRANCH)


def read_live_manifest(appmanifest_path: str) -> Tuple[str, ManifestRecord]:
    """Return the branch currently installed by Steam and the manifest record"""
    record = read_manifest(appmanifest_path)
    return branch_for_beta_key(record.beta_key), record


def detect_installed_branch(appmanifest_path: str) -> str:
    """Return the key of the branch currently installed by Steam"""
    branch_name, _record = read_live_manifest(appmanifest_path)
    return branch_name
