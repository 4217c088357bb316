"""Persisted data model of the managed environment.

The configuration file stores camelCase keys; the dataclasses below use
Python names and handle the conversion in to_dict()/from_dict().
"""

import copy
import datetime
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from branchkeeper.exceptions import InvalidBranchError
from branchkeeper.util.log import logger

CONFIG_VERSION = "2.0"

# Seconds and their fraction, of any length
FRACTION_RE = re.compile(r"(\d{2}:\d{2}:\d{2})\.(\d+)")

MAIN_BRANCH = "main-branch"
BETA_BRANCH = "beta-branch"
ALTERNATE_BRANCH = "alternate-branch"
ALTERNATE_BETA_BRANCH = "alternate-beta-branch"

BRANCH_NAMES = (MAIN_BRANCH, BETA_BRANCH, ALTERNATE_BRANCH, ALTERNATE_BETA_BRANCH)

BRANCH_DISPLAY_NAMES = {
    MAIN_BRANCH: "Main Branch",
    BETA_BRANCH: "Beta Branch",
    ALTERNATE_BRANCH: "Alternate Branch",
    ALTERNATE_BETA_BRANCH: "Alternate Beta Branch",
}

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"


def get_display_name(branch_name: str) -> str:
    """Return a human readable name for a branch key"""
    if branch_name in BRANCH_DISPLAY_NAMES:
        return BRANCH_DISPLAY_NAMES[branch_name]
    return " ".join(word.capitalize() for word in branch_name.replace("-", " ").split(" "))


def is_known_branch(branch_name: str) -> bool:
    return branch_name in BRANCH_NAMES


def check_branch(branch_name: str) -> str:
    """Return the branch name, or raise InvalidBranchError if it isn't a known branch"""
    if not is_known_branch(branch_name):
        raise InvalidBranchError(branch_name)
    return branch_name


def now() -> datetime.datetime:
    return datetime.datetime.now().replace(microsecond=0)


def parse_timestamp(value: Any) -> Optional[datetime.datetime]:
    """Read an ISO 8601 timestamp as written by any version of the config.
    Fractions of a second are cut to microseconds and timestamps with an
    offset are converted to naive local time, like now().
    Returns None if the value can't be read."""
    if isinstance(value, datetime.datetime):
        timestamp = value
    elif not isinstance(value, str) or not value.strip():
        return None
    else:
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        text = FRACTION_RE.sub(lambda match: "%s.%s" % (match.group(1), match.group(2)[:6].ljust(6, "0")), text)
        try:
            timestamp = datetime.datetime.fromisoformat(text)
        except ValueError:
            return None
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone().replace(tzinfo=None)
    return timestamp


def format_timestamp(value: datetime.datetime) -> str:
    return value.isoformat(timespec="seconds")


@dataclass(frozen=True)
class BranchBuildInfo:
    """A build id seen for a branch, and when it was detected"""

    build_id: str
    updated_time: datetime.datetime

    def to_dict(self) -> Dict[str, str]:
        return {"buildId": self.build_id, "updatedTime": format_timestamp(self.updated_time)}

    @classmethod
    def from_value(cls, value: Union[Dict, List, str], default_time: datetime.datetime) -> "BranchBuildInfo":
        """Build from any stored form: {"buildId", "updatedTime"}, the older
        [build_id, timestamp] array or a bare build id. Missing or unreadable
        timestamps fall back to default_time."""
        if isinstance(value, dict):
            build_id = value.get("buildId")
            updated_time = parse_timestamp(value.get("updatedTime"))
        elif isinstance(value, (list, tuple)):
            build_id = value[0] if value else None
            updated_time = parse_timestamp(value[1]) if len(value) > 1 else None
        else:
            build_id = value
            updated_time = None
        if build_id is None:
            raise ValueError("No build id in %r" % (value,))
        return cls(str(build_id), updated_time or default_time)


@dataclass
class DevEnvironmentConfig:
    """Root of the persisted state, schema version 2.0"""

    steam_library_path: str = ""
    game_install_path: str = ""
    managed_environment_path: str = ""
    selected_branches: List[str] = field(default_factory=list)
    installed_branch: Optional[str] = None
    branch_build_ids: Dict[str, BranchBuildInfo] = field(default_factory=dict)
    custom_launch_commands: Dict[str, str] = field(default_factory=dict)
    last_updated: datetime.datetime = field(default_factory=now)
    config_version: str = CONFIG_VERSION

    def copy(self) -> "DevEnvironmentConfig":
        return copy.deepcopy(self)

    def touch(self) -> None:
        self.last_updated = now()

    def get_build_id(self, branch_name: str) -> str:
        build_info = self.branch_build_ids.get(branch_name)
        return build_info.build_id if build_info else ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "steamLibraryPath": self.steam_library_path,
            "gameInstallPath": self.game_install_path,
            "managedEnvironmentPath": self.managed_environment_path,
            "selectedBranches": list(self.selected_branches),
            "installedBranch": self.installed_branch,
            "branchBuildIds": {name: info.to_dict() for name, info in self.branch_build_ids.items()},
            "customLaunchCommands": dict(self.custom_launch_commands),
            "lastUpdated": format_timestamp(self.last_updated),
            "configVersion": self.config_version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DevEnvironmentConfig":
        """Decode a version 2.0 payload. Raises ValueError or TypeError on
        payloads that don't have the expected shape."""
        last_updated = parse_timestamp(data.get("lastUpdated")) or now()

        branch_build_ids = {}
        for branch_name, value in _get_mapping(data, "branchBuildIds").items():
            if not is_known_branch(branch_name):
                logger.warning("Dropping build id of unknown branch %s", branch_name)
                continue
            if not value:
                continue
            build_info = BranchBuildInfo.from_value(value, last_updated)
            if build_info.build_id:
                branch_build_ids[branch_name] = build_info

        custom_launch_commands = {}
        for branch_name, command in _get_mapping(data, "customLaunchCommands").items():
            if not is_known_branch(branch_name):
                logger.warning("Dropping launch command of unknown branch %s", branch_name)
                continue
            if isinstance(command, str) and command.strip():
                custom_launch_commands[branch_name] = command.strip()

        return cls(
            steam_library_path=_get_string(data, "steamLibraryPath"),
            game_install_path=_get_string(data, "gameInstallPath"),
            managed_environment_path=_get_string(data, "managedEnvironmentPath"),
            selected_branches=get_branch_list(data.get("selectedBranches")),
            installed_branch=data.get("installedBranch") or None,
            branch_build_ids=branch_build_ids,
            custom_launch_commands=custom_launch_commands,
            last_updated=last_updated,
            config_version=str(data.get("configVersion") or CONFIG_VERSION),
        )


def _get_string(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise TypeError("%s should be a string, not %s" % (key, type(value).__name__))
    return value


def _get_mapping(data: Dict[str, Any], key: str) -> Dict:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise TypeError("%s should be an object, not %s" % (key, type(value).__name__))
    return value


def get_branch_list(value: Any) -> List[str]:
    """Return the branch names of a stored list, without duplicates"""
    if value is None:
        return []
    if not isinstance(value, list):
        raise TypeError("selectedBranches should be a list, not %s" % type(value).__name__)
    branches = []
    for branch_name in value:
        if branch_name not in branches:
            branches.append(str(branch_name))
    return branches
