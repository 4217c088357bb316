"""Status of the managed branches"""
import concurrent.futures
import datetime
import enum
import os
from dataclasses import dataclass
from gettext import gettext as _
from typing import Callable, List, Optional

from branchkeeper import settings
from branchkeeper.config import ConfigStore
from branchkeeper.exceptions import BranchKeeperError, BranchStatusError, ConfigCorruptError, MalformedManifestError
from branchkeeper.models import BRANCH_NAMES, DevEnvironmentConfig, check_branch, get_display_name
from branchkeeper.util.jobs import AsyncCall
from branchkeeper.util.locks import BRANCH_LOCKS, BranchLocks
from branchkeeper.util.log import logger
from branchkeeper.util.steam.appmanifest import (
    ManifestRecord, branch_for_beta_key, find_appmanifest, get_appmanifest_filename, read_manifest
)
from branchkeeper.util.strings import human_size
from branchkeeper.util.system import get_directory_stats, path_exists


class BranchStatus(enum.Enum):
    UP_TO_DATE = "up-to-date"
    UPDATE_AVAILABLE = "update-available"
    NOT_INSTALLED = "not-installed"
    ERROR = "error"

    @property
    def description(self) -> str:
        return STATUS_DESCRIPTIONS[self]


STATUS_DESCRIPTIONS = {
    BranchStatus.UP_TO_DATE: _("Up to date"),
    BranchStatus.UPDATE_AVAILABLE: _("Update available"),
    BranchStatus.NOT_INSTALLED: _("Not installed"),
    BranchStatus.ERROR: _("Error"),
}


@dataclass
class BranchInfo:
    branch_name: str
    display_name: str
    folder_path: str
    executable_path: str
    mods_dll_count: int = 0
    directory_size: int = 0
    file_count: int = 0
    last_modified: Optional[datetime.datetime] = None
    local_build_id: str = ""
    steam_build_id: str = ""
    status: BranchStatus = BranchStatus.NOT_INSTALLED
    is_current_steam_branch: bool = False
    error: Optional[str] = None
    manifest_drift: bool = False

    @property
    def formatted_size(self) -> str:
        return human_size(self.directory_size) if self.directory_size else "---"


@dataclass
class SteamInstall:
    """What the Steam library currently reports for the game"""

    manifest_path: Optional[str] = None
    branch_name: Optional[str] = None
    record: Optional[ManifestRecord] = None
    error: Optional[str] = None


def get_branch_path(config: DevEnvironmentConfig, branch_name: str) -> str:
    """Return the folder holding a branch in the managed environment"""
    if not config.managed_environment_path:
        raise BranchStatusError(_("The managed environment path is not set"))
    return os.path.join(config.managed_environment_path, settings.BRANCHES_DIRNAME, branch_name)


def get_shadow_manifest_path(branch_path: str) -> str:
    return os.path.join(branch_path, get_appmanifest_filename())


def count_mods(branch_path: str) -> int:
    """Number of DLLs directly inside the Mods folder of a branch"""
    mods_path = os.path.join(branch_path, settings.MODS_DIRNAME)
    if not os.path.isdir(mods_path):
        return 0
    try:
        with os.scandir(mods_path) as entries:
            return len([entry for entry in entries if entry.is_file() and entry.name.lower().endswith(".dll")])
    except OSError as ex:
        logger.warning("Can't list mods in %s: %s", mods_path, ex)
        return 0


def read_steam_install(config: DevEnvironmentConfig) -> SteamInstall:
    """Read the manifest of the Steam library install, without raising"""
    manifest_path = find_appmanifest(config.steam_library_path, config.game_install_path)
    if not manifest_path:
        return SteamInstall(error=_("No app manifest found in the Steam library"))
    try:
        record = read_manifest(manifest_path)
    except (OSError, MalformedManifestError) as ex:
        logger.error("Can't read app manifest %s: %s", manifest_path, ex)
        return SteamInstall(manifest_path=manifest_path, error=str(ex))
    return SteamInstall(manifest_path=manifest_path, branch_name=branch_for_beta_key(record.beta_key), record=record)


def get_status(installed: bool, local_build_id: str, steam_build_id: str) -> BranchStatus:
    if not installed:
        return BranchStatus.NOT_INSTALLED
    if not steam_build_id:
        return BranchStatus.ERROR
    if local_build_id == steam_build_id:
        return BranchStatus.UP_TO_DATE
    return BranchStatus.UPDATE_AVAILABLE


class BranchStatusResolver:
    """Compares the branch folders with the builds Steam reports.

    The build a branch should have is read from the Steam library manifest
    when Steam has that branch installed, and otherwise from the manifest
    copied into the branch folder by its last install or update.
    """

    def __init__(self, store: ConfigStore, locks: BranchLocks = BRANCH_LOCKS, max_workers: int = None):
        self.store = store
        self.locks = locks
        self.max_workers = max_workers or settings.STATUS_MAX_WORKERS

    def resolve(
        self, branch_name: str, config: DevEnvironmentConfig = None, live: SteamInstall = None
    ) -> BranchInfo:
        check_branch(branch_name)
        if config is None:
            config = self.store.get()
        if live is None:
            live = read_steam_install(config)

        folder_path = get_branch_path(config, branch_name)
        executable_path = os.path.join(folder_path, settings.GAME_EXECUTABLE)
        info = BranchInfo(
            branch_name=branch_name,
            display_name=get_display_name(branch_name),
            folder_path=folder_path,
            executable_path=executable_path,
            local_build_id=config.get_build_id(branch_name),
            is_current_steam_branch=live.branch_name == branch_name,
        )
        installed = os.path.isdir(folder_path) and path_exists(executable_path)
        if not installed:
            info.status = get_status(False, info.local_build_id, "")
            return info

        with self.locks.hold(branch_name):
            info.directory_size, info.file_count = get_directory_stats(folder_path)
            info.mods_dll_count = count_mods(folder_path)
            try:
                info.last_modified = datetime.datetime.fromtimestamp(os.path.getmtime(folder_path))
            except OSError as ex:
                logger.warning("Can't read modification time of %s: %s", folder_path, ex)
            shadow_build_id, shadow_error = self._read_shadow_build_id(folder_path)

        if info.is_current_steam_branch and live.record and live.record.build_id:
            info.steam_build_id = live.record.build_id_string
            info.manifest_drift = bool(shadow_build_id) and shadow_build_id != info.steam_build_id
        else:
            info.steam_build_id = shadow_build_id

        info.status = get_status(True, info.local_build_id, info.steam_build_id)
        if info.status == BranchStatus.ERROR:
            info.error = live.error if info.is_current_steam_branch and live.error else shadow_error
            logger.warning("Can't find the Steam build of %s: %s", branch_name, info.error)
        return info

    @staticmethod
    def _read_shadow_build_id(folder_path):
        manifest_path = get_shadow_manifest_path(folder_path)
        if not path_exists(manifest_path):
            return "", _("No app manifest in {}").format(folder_path)
        try:
            record = read_manifest(manifest_path)
        except (OSError, MalformedManifestError) as ex:
            return "", str(ex)
        if not record.build_id:
            return "", _("No build id in {}").format(manifest_path)
        return record.build_id_string, None

    def resolve_all(self, branches: List[str] = None) -> List[BranchInfo]:
        """Resolve several branches in parallel, in the order of the known
        branches. A branch that can't be resolved gets an Error status."""
        branches = [branch_name for branch_name in BRANCH_NAMES if branches is None or branch_name in branches]
        try:
            config = self.store.get()
        except ConfigCorruptError as ex:
            raise BranchStatusError(ex.message, cause=ex) from ex
        live = read_steam_install(config)

        results = {}
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_infos = {
                executor.submit(self.resolve, branch_name, config, live): branch_name
                for branch_name in branches
            }
            for future in concurrent.futures.as_completed(future_infos):
                branch_name = future_infos[future]
                try:
                    results[branch_name] = future.result()
                except (BranchKeeperError, OSError) as ex:
                    logger.error("Failed to resolve status of %s: %s", branch_name, ex)
                    results[branch_name] = self._get_error_info(config, branch_name, ex)
        return [results[branch_name] for branch_name in branches]

    @staticmethod
    def _get_error_info(config, branch_name, error):
        folder_path = ""
        if config.managed_environment_path:
            folder_path = get_branch_path(config, branch_name)
        return BranchInfo(
            branch_name=branch_name,
            display_name=get_display_name(branch_name),
            folder_path=folder_path,
            executable_path=os.path.join(folder_path, settings.GAME_EXECUTABLE) if folder_path else "",
            local_build_id=config.get_build_id(branch_name),
            status=BranchStatus.ERROR,
            error=str(error),
        )

    def refresh_async(self, callback: Callable, branches: List[str] = None) -> AsyncCall:
        """Resolve all branches in a thread, then call callback(infos, error)
        from the main loop."""
        return AsyncCall(self.resolve_all, callback, branches)
