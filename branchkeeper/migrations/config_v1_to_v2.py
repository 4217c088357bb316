"""Add timestamps to the recorded build ids

Version 1.0 stored a bare build id per branch. Version 2.0 records when each
build id was seen; for migrated entries this is the lastUpdated time of the
old file, the best information available.
"""
import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from branchkeeper.models import (
    BranchBuildInfo, DevEnvironmentConfig, get_branch_list, is_known_branch, now, parse_timestamp
)
from branchkeeper.util.log import logger

SOURCE_VERSION = "1.0"
TARGET_VERSION = "2.0"


@dataclass
class ConfigV1:
    steam_library_path: str = ""
    game_install_path: str = ""
    managed_environment_path: str = ""
    selected_branches: List[str] = field(default_factory=list)
    installed_branch: Optional[str] = None
    branch_build_ids: Dict[str, str] = field(default_factory=dict)
    custom_launch_commands: Dict[str, str] = field(default_factory=dict)
    last_updated: Optional[datetime.datetime] = None


def _get_text(data, key):
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise TypeError("%s should be a string, not %s" % (key, type(value).__name__))
    return value


def load(data: Dict[str, Any]) -> ConfigV1:
    """Read a version 1.0 payload"""
    build_ids = data.get("branchBuildIds")
    if build_ids is None:
        # Some early files used a shorter key
        build_ids = data.get("buildIds") or {}
    if not isinstance(build_ids, dict):
        raise TypeError("branchBuildIds should be an object, not %s" % type(build_ids).__name__)
    launch_commands = data.get("customLaunchCommands") or {}
    if not isinstance(launch_commands, dict):
        raise TypeError("customLaunchCommands should be an object, not %s" % type(launch_commands).__name__)

    return ConfigV1(
        steam_library_path=_get_text(data, "steamLibraryPath"),
        game_install_path=_get_text(data, "gameInstallPath"),
        managed_environment_path=_get_text(data, "managedEnvironmentPath"),
        selected_branches=get_branch_list(data.get("selectedBranches")),
        installed_branch=data.get("installedBranch") or None,
        branch_build_ids={str(name): value for name, value in build_ids.items()},
        custom_launch_commands=dict(launch_commands),
        last_updated=parse_timestamp(data.get("lastUpdated")),
    )


def migrate(config: ConfigV1) -> DevEnvironmentConfig:
    """Convert a 1.0 configuration. Doesn't modify its argument."""
    last_updated = config.last_updated or now()
    branch_build_ids = {}
    for branch_name, build_id in config.branch_build_ids.items():
        if not is_known_branch(branch_name):
            logger.warning("Dropping build id of unknown branch %s", branch_name)
            continue
        if build_id is None or str(build_id).strip() == "":
            continue
        branch_build_ids[branch_name] = BranchBuildInfo(str(build_id).strip(), last_updated)

    custom_launch_commands = {}
    for branch_name, command in config.custom_launch_commands.items():
        if is_known_branch(branch_name) and isinstance(command, str) and command.strip():
            custom_launch_commands[branch_name] = command.strip()

    return DevEnvironmentConfig(
        steam_library_path=config.steam_library_path,
        game_install_path=config.game_install_path,
        managed_environment_path=config.managed_environment_path,
        selected_branches=list(config.selected_branches),
        installed_branch=config.installed_branch,
        branch_build_ids=branch_build_ids,
        custom_launch_commands=custom_launch_commands,
        last_updated=last_updated,
        config_version=TARGET_VERSION,
    )
