"""Build ids and launch commands recorded for each branch"""
import datetime
from typing import Optional

from branchkeeper.config import ConfigStore
from branchkeeper.models import BranchBuildInfo, check_branch, now
from branchkeeper.util.log import logger


class BuildRegistry:
    def __init__(self, store: ConfigStore):
        self.store = store

    def get_build_info(self, branch_name: str) -> Optional[BranchBuildInfo]:
        check_branch(branch_name)
        return self.store.get().branch_build_ids.get(branch_name)

    def get_build_id(self, branch_name: str) -> str:
        """Return the build id installed in a branch, or an empty string"""
        build_info = self.get_build_info(branch_name)
        return build_info.build_id if build_info else ""

    def set_build_id(self, branch_name: str, build_id: str, updated_time: datetime.datetime = None) -> BranchBuildInfo:
        """Record the build now installed in a branch. The time defaults to now."""
        check_branch(branch_name)
        build_id = str(build_id).strip()
        if not build_id:
            raise ValueError("A build id is required")
        build_info = BranchBuildInfo(build_id, updated_time or now())

        def _set_build_id(config):
            config.branch_build_ids[branch_name] = build_info

        self.store.update(_set_build_id)
        logger.info("Build %s recorded for %s", build_id, branch_name)
        return build_info

    def clear_build_id(self, branch_name: str) -> None:
        check_branch(branch_name)

        def _clear_build_id(config):
            config.branch_build_ids.pop(branch_name, None)

        self.store.update(_clear_build_id)

    def get_custom_launch_command(self, branch_name: str) -> str:
        check_branch(branch_name)
        return self.store.get().custom_launch_commands.get(branch_name, "")

    def has_custom_launch_command(self, branch_name: str) -> bool:
        return bool(self.get_custom_launch_command(branch_name))

    def set_custom_launch_command(self, branch_name: str, command: Optional[str]) -> None:
        """Set the command used to start a branch. A blank command removes it."""
        check_branch(branch_name)
        command = (command or "").strip()

        def _set_command(config):
            if command:
                config.custom_launch_commands[branch_name] = command
            else:
                config.custom_launch_commands.pop(branch_name, None)

        self.store.update(_set_command)
