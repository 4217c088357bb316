import errno
import os
import shutil
import tempfile
from unittest import TestCase, mock

from branchkeeper.exceptions import BranchBusyError, TransferFailedError
from branchkeeper.transfer import DirectoryTransfer, TransferCancelled, TransferResult
from branchkeeper.util.locks import BranchLocks

SOURCE_FILES = [
    "Schedule I.exe",
    "UnityPlayer.dll",
    "Schedule I_Data/level0",
    "Schedule I_Data/Managed/Assembly-CSharp.dll",
    "Schedule I_Data/Mods/kept.txt",
]

REAL_SCANDIR = os.scandir


def deny_listing(folder_name):
    """Replacement for os.scandir failing on the folders named folder_name"""

    def scandir(path="."):
        if os.path.basename(os.fspath(path)) == folder_name:
            raise PermissionError(errno.EACCES, "Permission denied", os.fspath(path))
        return REAL_SCANDIR(path)

    return scandir


def write_file(path, content="data"):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as output_file:
        output_file.write(content)


class TransferTestCase(TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.temp_dir.cleanup)
        self.source = os.path.join(self.temp_dir.name, "game")
        self.destination = os.path.join(self.temp_dir.name, "managed", "branches", "main-branch")
        for relative_path in SOURCE_FILES:
            write_file(os.path.join(self.source, relative_path), relative_path)
        write_file(os.path.join(self.source, "Mods", "user-mod.dll"))
        write_file(os.path.join(self.source, "Plugins", "user-plugin.dll"))
        self.events = []
        self.locks = BranchLocks()
        self.transfer = self.get_transfer()

    def get_transfer(self, **kwargs):
        kwargs.setdefault("progress_interval", 0)
        kwargs.setdefault("retry_delay", 0)
        return DirectoryTransfer(locks=self.locks, progress_callback=self.events.append, **kwargs)


class TestCopy(TransferTestCase):
    def test_install_copies_the_tree(self):
        result = self.transfer.install("main-branch", self.source, self.destination)
        self.assertEqual(result, TransferResult("install", 5, 5))
        for relative_path in SOURCE_FILES:
            with open(os.path.join(self.destination, relative_path), encoding="utf-8") as copied_file:
                self.assertEqual(copied_file.read(), relative_path)

    def test_root_mods_and_plugins_are_excluded(self):
        self.transfer.install("main-branch", self.source, self.destination)
        self.assertFalse(os.path.exists(os.path.join(self.destination, "Mods")))
        self.assertFalse(os.path.exists(os.path.join(self.destination, "Plugins")))
        self.assertTrue(os.path.exists(os.path.join(self.destination, "Schedule I_Data", "Mods", "kept.txt")))

    def test_update_overwrites_files(self):
        write_file(os.path.join(self.destination, "Schedule I.exe"), "old")
        result = self.transfer.update("main-branch", self.source, self.destination)
        self.assertEqual(result.operation, "update")
        with open(os.path.join(self.destination, "Schedule I.exe"), encoding="utf-8") as copied_file:
            self.assertEqual(copied_file.read(), "Schedule I.exe")

    def test_progress(self):
        self.transfer.install("main-branch", self.source, self.destination)
        completed = [event.completed_files for event in self.events]
        self.assertEqual(completed[0], 0)
        self.assertEqual(completed, sorted(completed))
        self.assertEqual(self.events[-1].completed_files, 5)
        self.assertEqual(self.events[-1].total_files, 5)
        self.assertEqual(self.events[-1].percent, 100.0)

    def test_progress_is_throttled(self):
        transfer = self.get_transfer(progress_interval=3600)
        transfer.install("main-branch", self.source, self.destination)
        self.assertEqual([event.completed_files for event in self.events], [0, 5])

    def test_cancel(self):
        def cancel_after_two(progress):
            if progress.completed_files == 2:
                self.transfer.cancel()

        self.transfer.progress_callback = cancel_after_two
        result = self.transfer.install("main-branch", self.source, self.destination)
        self.assertIsInstance(result, TransferCancelled)
        self.assertTrue(result.cancelled)
        self.assertEqual(result.completed_files, 2)
        self.assertEqual(result.total_files, 5)
        self.assertEqual(result.partial_directory, self.destination)

    def test_cancel_before_start(self):
        self.transfer.cancel()
        result = self.transfer.install("main-branch", self.source, self.destination)
        self.assertIsInstance(result, TransferCancelled)
        self.assertEqual((result.completed_files, result.total_files), (0, 5))
        self.assertFalse(os.path.exists(os.path.join(self.destination, "Schedule I.exe")))

    def test_unreadable_folder_fails_the_copy(self):
        with mock.patch("os.scandir", side_effect=deny_listing("Managed")):
            with self.assertRaises(TransferFailedError) as context:
                self.transfer.install("main-branch", self.source, self.destination)
        self.assertEqual(context.exception.path, os.path.join(self.source, "Schedule I_Data", "Managed"))
        self.assertEqual(context.exception.partial_directory, self.destination)
        self.assertIsInstance(context.exception.__cause__, PermissionError)

    def test_folder_symlinks_are_copied_as_links(self):
        outside = os.path.join(self.temp_dir.name, "outside")
        write_file(os.path.join(outside, "shared.txt"))
        os.symlink(outside, os.path.join(self.source, "Schedule I_Data", "Shared"))
        result = self.transfer.install("main-branch", self.source, self.destination)
        self.assertEqual(result.total_files, 6)
        link_path = os.path.join(self.destination, "Schedule I_Data", "Shared")
        self.assertTrue(os.path.islink(link_path))
        self.assertEqual(os.readlink(link_path), outside)

    def test_missing_source(self):
        with self.assertRaises(TransferFailedError):
            self.transfer.install("main-branch", os.path.join(self.source, "missing"), self.destination)

    def test_one_transfer_per_branch(self):
        with self.locks.hold("main-branch"):
            with self.assertRaises(BranchBusyError):
                self.transfer.install("main-branch", self.source, self.destination)
            result = self.transfer.install("beta-branch", self.source, self.destination)
        self.assertEqual(result.completed_files, 5)


class TestRetries(TransferTestCase):
    def test_transient_error_is_retried(self):
        real_copy = shutil.copy2
        calls = []

        def flaky_copy(source, destination, follow_symlinks=True):
            calls.append(source)
            if len(calls) == 1:
                raise OSError(errno.EBUSY, "Device or resource busy")
            return real_copy(source, destination, follow_symlinks=follow_symlinks)

        with mock.patch("branchkeeper.transfer.shutil.copy2", side_effect=flaky_copy):
            result = self.transfer.install("main-branch", self.source, self.destination)
        self.assertEqual(result.completed_files, 5)
        self.assertEqual(len(calls), 6)

    def test_backoff_doubles(self):
        transfer = self.get_transfer(retry_delay=0.5, retry_count=3)
        error = OSError(errno.EACCES, "Permission denied")
        with mock.patch("branchkeeper.transfer.shutil.copy2", side_effect=error):
            with mock.patch("branchkeeper.transfer.time.sleep") as sleep:
                with self.assertRaises(TransferFailedError):
                    transfer.install("main-branch", self.source, self.destination)
        self.assertEqual([call[0][0] for call in sleep.call_args_list], [0.5, 1.0, 2.0])

    def test_exhausted_retries(self):
        transfer = self.get_transfer(retry_count=2)
        error = OSError(errno.EBUSY, "Device or resource busy")
        with mock.patch("branchkeeper.transfer.shutil.copy2", side_effect=error) as copy:
            with self.assertRaises(TransferFailedError) as context:
                transfer.install("main-branch", self.source, self.destination)
        self.assertEqual(copy.call_count, 3)
        self.assertIs(context.exception.cause, error)
        self.assertIs(context.exception.__cause__, error)
        self.assertEqual(context.exception.partial_directory, self.destination)

    def test_permanent_error_fails_at_once(self):
        error = OSError(errno.ENOSPC, "No space left on device")
        with mock.patch("branchkeeper.transfer.shutil.copy2", side_effect=error) as copy:
            with self.assertRaises(TransferFailedError):
                self.transfer.install("main-branch", self.source, self.destination)
        self.assertEqual(copy.call_count, 1)

    def test_lock_is_released_after_a_failure(self):
        error = OSError(errno.ENOSPC, "No space left on device")
        with mock.patch("branchkeeper.transfer.shutil.copy2", side_effect=error):
            with self.assertRaises(TransferFailedError):
                self.transfer.install("main-branch", self.source, self.destination)
        self.assertFalse(self.locks.is_locked("main-branch"))


class TestDelete(TransferTestCase):
    def setUp(self):
        super().setUp()
        self.transfer.install("main-branch", self.source, self.destination)
        self.events.clear()

    def test_delete(self):
        result = self.transfer.delete("main-branch", self.destination)
        self.assertEqual(result, TransferResult("delete", 5, 5))
        self.assertFalse(os.path.exists(self.destination))
        self.assertEqual(self.events[-1].completed_files, 5)

    def test_delete_missing_folder(self):
        result = self.transfer.delete("main-branch", os.path.join(self.destination, "missing"))
        self.assertEqual(result.total_files, 0)

    def test_protected_folders(self):
        with self.assertRaises(TransferFailedError):
            self.transfer.delete("main-branch", os.path.expanduser("~"))
        with self.assertRaises(TransferFailedError):
            self.transfer.delete("main-branch", "/")

    def test_cancel_delete(self):
        def cancel_at_start(progress):
            if progress.completed_files == 0:
                self.transfer.cancel()

        self.transfer.progress_callback = cancel_at_start
        result = self.transfer.delete("main-branch", self.destination)
        self.assertIsInstance(result, TransferCancelled)
        self.assertEqual(result.completed_files, 0)
        self.assertEqual(result.partial_directory, self.destination)
        self.assertTrue(os.path.exists(os.path.join(self.destination, "Schedule I.exe")))

    def test_unreadable_folder_fails_the_delete(self):
        with mock.patch("os.scandir", side_effect=deny_listing("Managed")):
            with self.assertRaises(TransferFailedError) as context:
                self.transfer.delete("main-branch", self.destination)
        self.assertEqual(context.exception.partial_directory, self.destination)
        self.assertTrue(os.path.exists(os.path.join(self.destination, "Schedule I.exe")))

    def test_symlinks_are_removed_not_followed(self):
        outside = os.path.join(self.temp_dir.name, "outside")
        write_file(os.path.join(outside, "precious.txt"))
        os.symlink(outside, os.path.join(self.destination, "link"))
        self.transfer.delete("main-branch", self.destination)
        self.assertFalse(os.path.exists(self.destination))
        self.assertTrue(os.path.exists(os.path.join(outside, "precious.txt")))


class TestCopyManifest(TransferTestCase):
    def test_copy_is_verbatim(self):
        manifest_path = os.path.join(self.temp_dir.name, "appmanifest_3164500.acf")
        write_file(manifest_path, '"AppState"\n{\n\t"buildid"\t\t"777"\n}\n')
        os.makedirs(self.destination)
        copy_path = self.transfer.copy_manifest(manifest_path, self.destination)
        self.assertEqual(copy_path, os.path.join(self.destination, "appmanifest_3164500.acf"))
        with open(manifest_path, "rb") as original, open(copy_path, "rb") as copy:
            self.assertEqual(original.read(), copy.read())
