"""Install, update and remove branches of the managed environment"""
import os
import threading
from gettext import gettext as _
from typing import Callable, List, Optional

from branchkeeper import settings
from branchkeeper.config import ConfigStore
from branchkeeper.exceptions import BranchStatusError, TransferFailedError
from branchkeeper.models import check_branch, is_known_branch
from branchkeeper.registry import BuildRegistry
from branchkeeper.status import (
    BranchInfo, BranchStatus, BranchStatusResolver, SteamInstall, get_branch_path, read_steam_install
)
from branchkeeper.transfer import DirectoryTransfer, TransferProgress, TransferResult
from branchkeeper.util.locks import BRANCH_LOCKS, BranchLocks
from branchkeeper.util.log import logger
from branchkeeper.util.strings import split_arguments


class BranchManager:
    """Runs the transfers of the branches and keeps the configuration in
    line with what is on disk."""

    def __init__(
        self,
        store: ConfigStore = None,
        registry: BuildRegistry = None,
        resolver: BranchStatusResolver = None,
        locks: BranchLocks = BRANCH_LOCKS,
    ):
        self.store = store or ConfigStore()
        self.registry = registry or BuildRegistry(self.store)
        self.locks = locks
        self.resolver = resolver or BranchStatusResolver(self.store, locks=locks)
        self.transfer: Optional[DirectoryTransfer] = None
        self.stop_request = threading.Event()
        self.busy = False

    def branch_path(self, branch_name: str) -> str:
        return get_branch_path(self.store.get(), check_branch(branch_name))

    def executable_path(self, branch_name: str) -> str:
        return os.path.join(self.branch_path(branch_name), settings.GAME_EXECUTABLE)

    def refresh(self, branches: List[str] = None) -> List[BranchInfo]:
        return self.resolver.resolve_all(branches)

    def _get_steam_install(self, branch_name: str) -> SteamInstall:
        """Return the Steam install to copy from, checking that it holds the
        requested branch."""
        config = self.store.get()
        if not config.game_install_path or not os.path.isdir(config.game_install_path):
            raise BranchStatusError(_("The game install path is not set or doesn't exist"))
        live = read_steam_install(config)
        if not live.record:
            raise BranchStatusError(live.error or _("The Steam app manifest can't be read"))
        if not live.record.build_id:
            raise BranchStatusError(_("The Steam app manifest has no build id"))
        if live.branch_name != branch_name:
            raise BranchStatusError(
                _("Steam has {installed} installed, switch to {requested} in Steam first").format(
                    installed=live.branch_name, requested=branch_name
                )
            )
        return live

    def install_branch(self, branch_name: str, progress_callback: Callable[[TransferProgress], None] = None):
        return self._copy_branch(DirectoryTransfer.INSTALL, branch_name, progress_callback)

    def update_branch(self, branch_name: str, progress_callback: Callable[[TransferProgress], None] = None):
        return self._copy_branch(DirectoryTransfer.UPDATE, branch_name, progress_callback)

    def _copy_branch(self, operation, branch_name, progress_callback) -> TransferResult:
        check_branch(branch_name)
        self._start_operation()
        try:
            live = self._get_steam_install(branch_name)
            source = self.store.get().game_install_path
            destination = self.branch_path(branch_name)

            transfer = self._create_transfer(progress_callback)
            try:
                if operation == DirectoryTransfer.INSTALL:
                    result = transfer.install(branch_name, source, destination)
                else:
                    result = transfer.update(branch_name, source, destination)
                if result.cancelled:
                    logger.info(
                        "%s of %s cancelled, %s left incomplete", operation, branch_name, result.partial_directory
                    )
                    return result
                transfer.copy_manifest(live.manifest_path, destination)
            except TransferFailedError:
                self.registry.clear_build_id(branch_name)
                raise
        finally:
            self._end_operation()

        self.registry.set_build_id(branch_name, live.record.build_id_string)

        def _select_branch(config):
            if branch_name not in config.selected_branches:
                config.selected_branches.append(branch_name)

        self.store.update(_select_branch)
        logger.info("%s of %s complete, build %s", operation, branch_name, live.record.build_id)
        return result

    def delete_branch(self, branch_name: str, progress_callback: Callable[[TransferProgress], None] = None):
        self._start_operation()
        try:
            path = self.branch_path(branch_name)
            transfer = self._create_transfer(progress_callback)
            try:
                result = transfer.delete(branch_name, path)
            except TransferFailedError:
                self.registry.clear_build_id(branch_name)
                raise
        finally:
            self._end_operation()
        if result.cancelled:
            return result
        self._forget_branches([branch_name])
        logger.info("Deleted %s", branch_name)
        return result

    def _start_operation(self):
        self.busy = True

    def _create_transfer(self, progress_callback) -> DirectoryTransfer:
        transfer = DirectoryTransfer(locks=self.locks, progress_callback=progress_callback)
        self.transfer = transfer
        if self.stop_request.is_set():
            transfer.cancel()
        return transfer

    def _end_operation(self):
        self.transfer = None
        self.busy = False
        self.stop_request.clear()

    def cancel(self) -> bool:
        """Cancel the running operation. When nothing runs yet, the request is
        kept and the next operation stops before its first file.
        Return whether an operation was running."""
        self.stop_request.set()
        transfer = self.transfer
        if transfer:
            transfer.cancel()
        return self.busy

    def get_launch_command(self, branch_name: str) -> List[str]:
        """Return the command line starting a branch"""
        command = self.registry.get_custom_launch_command(branch_name)
        if command:
            return split_arguments(command)
        return [self.executable_path(branch_name)]

    def _forget_branches(self, branch_names):
        def _forget(config):
            for branch_name in branch_names:
                config.branch_build_ids.pop(branch_name, None)
            config.selected_branches = [name for name in config.selected_branches if name not in branch_names]
            if config.installed_branch in branch_names:
                logger.info("Clearing installed branch %s", config.installed_branch)
                config.installed_branch = None

        return self.store.update(_forget)

    def heal(self) -> List[str]:
        """Remove the selected branches that are not installed or can't be
        resolved. Returns the names of the removed branches."""
        selected_branches = self.store.get().selected_branches
        if not selected_branches:
            return []
        removed = [branch_name for branch_name in selected_branches if not is_known_branch(branch_name)]
        for info in self.refresh(selected_branches):
            if info.status in (BranchStatus.NOT_INSTALLED, BranchStatus.ERROR):
                logger.warning("Removing %s from the configuration (%s)", info.branch_name, info.status.description)
                removed.append(info.branch_name)
        if removed:
            self._forget_branches(removed)
        return removed
