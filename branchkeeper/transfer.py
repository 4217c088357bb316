"""Copy and delete branch folders"""
import errno
import os
import shutil
import threading
import time
from dataclasses import dataclass
from gettext import gettext as _
from typing import Callable, Optional, Sequence

from branchkeeper import settings
from branchkeeper.exceptions import TransferFailedError
from branchkeeper.util.locks import BRANCH_LOCKS, BranchLocks
from branchkeeper.util.log import logger
from branchkeeper.util.system import create_folder, is_protected_folder, list_files

# Errors caused by another process holding the file for a moment
TRANSIENT_ERRNOS = {errno.EACCES, errno.EAGAIN, errno.EBUSY, errno.EINTR, errno.ETXTBSY, errno.EPERM}

get_time = time.monotonic


@dataclass
class TransferProgress:
    percent: float
    current_file: str
    completed_files: int
    total_files: int


@dataclass
class TransferResult:
    operation: str
    completed_files: int
    total_files: int
    cancelled: bool = False
    partial_directory: Optional[str] = None


@dataclass
class TransferCancelled(TransferResult):
    """Returned instead of a TransferResult when the transfer was stopped
    with cancel(). Files already processed are left in place."""

    cancelled: bool = True


class DirectoryTransfer:
    """Copies or deletes the files of a branch, one at a time.

    Operations are blocking; run them in a thread and call cancel() from
    anywhere to stop before the next file. A cancelled instance stays
    cancelled, use a new one for each operation. Only one operation can run
    on a given branch at a time. Folders that can't be listed fail the
    operation; symlinks are copied as links.
    """

    INSTALL = "install"
    UPDATE = "update"
    DELETE = "delete"

    def __init__(
        self,
        locks: BranchLocks = BRANCH_LOCKS,
        progress_callback: Callable[[TransferProgress], None] = None,
        progress_interval: float = None,
        retry_count: int = None,
        retry_delay: float = None,
        excluded_directories: Sequence[str] = None,
    ) -> None:
        self.locks = locks
        self.progress_callback = progress_callback
        self.progress_interval = settings.TRANSFER_PROGRESS_INTERVAL if progress_interval is None else progress_interval
        self.retry_count = settings.TRANSFER_RETRY_COUNT if retry_count is None else retry_count
        self.retry_delay = settings.TRANSFER_RETRY_DELAY if retry_delay is None else retry_delay
        if excluded_directories is None:
            excluded_directories = settings.EXCLUDED_DIRECTORIES
        self.excluded_directories = tuple(excluded_directories)
        self.stop_request = threading.Event()
        self.progress: Optional[TransferProgress] = None
        self._last_report_time = 0.0
        self._partial_directory = None

    def cancel(self) -> None:
        """Stop the running operation before its next file. Once cancelled,
        an operation that hasn't started yet stops before its first file."""
        logger.info("Transfer cancellation requested")
        self.stop_request.set()

    def install(self, branch_name: str, source: str, destination: str) -> TransferResult:
        return self._copy_tree(self.INSTALL, branch_name, source, destination)

    def update(self, branch_name: str, source: str, destination: str) -> TransferResult:
        return self._copy_tree(self.UPDATE, branch_name, source, destination)

    def _copy_tree(self, operation, branch_name, source, destination):
        if not os.path.isdir(source):
            raise TransferFailedError(source, FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), source))
        with self.locks.hold(branch_name, blocking=False):
            self._start(destination)
            files = list_files(source, self.excluded_directories, onerror=self._raise_listing_error)
            total_files = len(files)
            logger.info("Copying %s files from %s to %s", total_files, source, destination)
            self._report(0, total_files, "", force=True)
            self._run(create_folder, destination, destination)
            current_file = ""
            for index, current_file in enumerate(files):
                if self.stop_request.is_set():
                    logger.warning("%s of %s cancelled after %s files", operation, branch_name, index)
                    return TransferCancelled(operation, index, total_files, partial_directory=destination)
                source_path = os.path.join(source, current_file)
                destination_path = os.path.join(destination, current_file)
                self._run(self._copy_file, destination_path, source_path, destination_path)
                self._report(index + 1, total_files, current_file)
            self._report(total_files, total_files, current_file, force=True)
            return TransferResult(operation, total_files, total_files)

    @staticmethod
    def _copy_file(source_path, destination_path):
        os.makedirs(os.path.dirname(destination_path), exist_ok=True)
        if os.path.islink(destination_path):
            os.unlink(destination_path)
        shutil.copy2(source_path, destination_path, follow_symlinks=False)

    def delete(self, branch_name: str, path: str) -> TransferResult:
        """Remove a branch folder: its files first, then its folders from
        the deepest up."""
        if is_protected_folder(path):
            raise TransferFailedError(path, _("refusing to delete a protected folder"))
        if not os.path.isdir(path):
            logger.info("%s doesn't exist, nothing to delete", path)
            return TransferResult(self.DELETE, 0, 0)
        with self.locks.hold(branch_name, blocking=False):
            self._start(path)
            files = []
            directories = []
            for base, dirs, filenames in os.walk(path, topdown=False, onerror=self._raise_listing_error):
                for dirname in dirs:
                    dir_path = os.path.join(base, dirname)
                    if os.path.islink(dir_path):
                        files.append(dir_path)
                    else:
                        directories.append(dir_path)
                files.extend(os.path.join(base, filename) for filename in filenames)
            directories.append(path)
            total_files = len(files)
            logger.info("Deleting %s files from %s", total_files, path)
            self._report(0, total_files, "", force=True)
            current_file = ""
            for index, file_path in enumerate(files):
                if self.stop_request.is_set():
                    logger.warning("Deletion of %s cancelled after %s files", branch_name, index)
                    return TransferCancelled(self.DELETE, index, total_files, partial_directory=path)
                current_file = os.path.relpath(file_path, path)
                self._run(os.remove, file_path, file_path)
                self._report(index + 1, total_files, current_file)
            for directory in directories:
                self._run(os.rmdir, directory, directory)
            self._report(total_files, total_files, current_file, force=True)
            return TransferResult(self.DELETE, total_files, total_files)

    def copy_manifest(self, manifest_path: str, branch_path: str) -> str:
        """Keep a copy of the Steam manifest inside the branch folder, so the
        build it was copied from is known later on."""
        destination = os.path.join(branch_path, os.path.basename(manifest_path))
        self._partial_directory = None
        self._run(shutil.copyfile, destination, manifest_path, destination)
        logger.debug("Copied %s to %s", manifest_path, destination)
        return destination

    def _start(self, partial_directory):
        self.progress = None
        self._last_report_time = 0.0
        self._partial_directory = partial_directory

    def _raise_listing_error(self, error):
        logger.error("Can't list %s: %s", error.filename, error)
        raise TransferFailedError(error.filename, error, self._partial_directory) from error

    def _run(self, func, path, *args):
        """Call func, retrying while it fails with a transient error"""
        delay = self.retry_delay
        attempt = 0
        while True:
            try:
                return func(*args)
            except OSError as ex:
                if ex.errno not in TRANSIENT_ERRNOS or attempt >= self.retry_count:
                    logger.error("Failed to transfer %s: %s", path, ex)
                    raise TransferFailedError(path, ex, self._partial_directory) from ex
                attempt += 1
                logger.warning("%s is busy (%s), retrying in %0.1fs", path, ex, delay)
                time.sleep(delay)
                delay *= 2

    def _report(self, completed_files, total_files, current_file, force=False):
        now = get_time()
        if not force and now - self._last_report_time < self.progress_interval:
            return
        self._last_report_time = now
        percent = 100.0 if not total_files else completed_files * 100.0 / total_files
        self.progress = TransferProgress(percent, current_file, completed_files, total_files)
        if self.progress_callback:
            self.progress_callback(self.progress)
