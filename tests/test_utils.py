import datetime
import os
import tempfile
import threading
from unittest import TestCase

from gi.repository import GLib

from branchkeeper.exceptions import BranchBusyError
from branchkeeper.models import get_display_name, now, parse_timestamp
from branchkeeper.util import strings, system
from branchkeeper.util.jobs import AsyncCall, schedule_at_idle
from branchkeeper.util.locks import BranchLocks


class TestFileUtils(TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.temp_dir.cleanup)
        self.root = self.temp_dir.name
        for relative_path in ("a.txt", "Mods/mod.dll", "Plugins/plugin.dll", "data/Mods/inner.txt"):
            path = os.path.join(self.root, relative_path)
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "w", encoding="utf-8") as output_file:
                output_file.write("1234")

    def test_path_contains(self):
        self.assertTrue(system.path_contains("/home/user", "/home/user/games"))
        self.assertTrue(system.path_contains("/home/user", "/home/user"))
        self.assertFalse(system.path_contains("/home/user/games", "/home/user"))
        self.assertFalse(system.path_contains("/home/user", "/home/username"))
        self.assertFalse(system.path_contains(None, "/home"))

    def test_protected_folders(self):
        self.assertTrue(system.is_protected_folder("/"))
        self.assertTrue(system.is_protected_folder("~"))
        self.assertTrue(system.is_protected_folder(os.path.dirname(os.path.expanduser("~"))))
        self.assertFalse(system.is_protected_folder(self.root))

    def test_directory_stats(self):
        self.assertEqual(system.get_directory_stats(self.root), (16, 4))

    def test_list_files(self):
        self.assertEqual(
            system.list_files(self.root, ("Mods", "Plugins")), ["a.txt", os.path.join("data", "Mods", "inner.txt")]
        )
        self.assertEqual(len(system.list_files(self.root)), 4)

    def test_fix_path_case(self):
        wrong_case = os.path.join(self.root, "mods", "MOD.DLL")
        self.assertEqual(system.fix_path_case(wrong_case), os.path.join(self.root, "Mods", "mod.dll"))

    def test_path_exists(self):
        self.assertFalse(system.path_exists(None))
        self.assertFalse(system.path_exists(""))
        self.assertTrue(system.path_exists(os.path.join(self.root, "a.txt")))


class TestStringUtils(TestCase):
    def test_split_arguments(self):
        self.assertEqual(strings.split_arguments('wine "Schedule I.exe" -x'), ["wine", "Schedule I.exe", "-x"])
        self.assertEqual(strings.split_arguments('wine "Schedule I.exe'), ["wine", "Schedule I.exe"])
        self.assertEqual(strings.split_arguments(""), [])

    def test_human_size(self):
        self.assertEqual(strings.human_size(512), "512.0 bytes")
        self.assertEqual(strings.human_size(2048), "2.0 kB")
        self.assertEqual(strings.human_size(3 * 1024 * 1024 * 1024), "3.0 GB")


class TestModels(TestCase):
    def test_display_names(self):
        self.assertEqual(get_display_name("alternate-beta-branch"), "Alternate Beta Branch")
        self.assertEqual(get_display_name("nightly-build"), "Nightly Build")

    def test_parse_timestamp(self):
        self.assertEqual(parse_timestamp("2024-01-01T00:00:00"), datetime.datetime(2024, 1, 1))
        self.assertIsNone(parse_timestamp("yesterday"))
        self.assertIsNone(parse_timestamp(None))
        self.assertIsNone(parse_timestamp("  "))

    def test_parse_timestamp_fractions(self):
        self.assertEqual(parse_timestamp("2024-01-01T00:00:00.1234567").microsecond, 123456)
        self.assertEqual(parse_timestamp("2024-01-01T00:00:00.5").microsecond, 500000)

    def test_parse_timestamp_is_naive_local_time(self):
        utc_midnight = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)
        expected = utc_midnight.astimezone().replace(tzinfo=None)
        for value in ("2024-01-01T00:00:00Z", "2024-01-01T00:00:00+00:00", utc_midnight):
            timestamp = parse_timestamp(value)
            self.assertIsNone(timestamp.tzinfo)
            self.assertEqual(timestamp, expected)
        self.assertLess(parse_timestamp("2024-01-01T00:00:00Z"), now())


class TestBranchLocks(TestCase):
    def test_busy_branch(self):
        locks = BranchLocks()
        with locks.hold("main-branch"):
            self.assertTrue(locks.is_locked("main-branch"))
            with self.assertRaises(BranchBusyError):
                with locks.hold("main-branch", blocking=False):
                    pass
            with locks.hold("beta-branch", blocking=False):
                self.assertTrue(locks.is_locked("beta-branch"))
        self.assertFalse(locks.is_locked("main-branch"))
        self.assertFalse(locks.is_locked("beta-branch"))

    def test_same_lock_for_a_branch(self):
        locks = BranchLocks()
        self.assertIs(locks.get("main-branch"), locks.get("main-branch"))
        self.assertIsNot(locks.get("main-branch"), locks.get("beta-branch"))


class TestAsyncCall(TestCase):
    def run_async(self, func, *args):
        loop = GLib.MainLoop()
        outcome = {}

        def callback(result, error):
            outcome["result"] = result
            outcome["error"] = error
            outcome["thread"] = threading.current_thread()
            loop.quit()

        AsyncCall(func, callback, *args)
        GLib.timeout_add_seconds(10, loop.quit)
        loop.run()
        return outcome

    def test_result_is_passed_to_the_callback(self):
        outcome = self.run_async(lambda value: value * 2, 21)
        self.assertEqual(outcome["result"], 42)
        self.assertIsNone(outcome["error"])
        self.assertIs(outcome["thread"], threading.main_thread())

    def test_error_is_passed_to_the_callback(self):
        def fail():
            raise ValueError("boom")

        outcome = self.run_async(fail)
        self.assertIsNone(outcome["result"])
        self.assertIsInstance(outcome["error"], ValueError)

    def test_idle_function_runs_once(self):
        loop = GLib.MainLoop()
        calls = []
        source_id = schedule_at_idle(calls.append, "first")
        self.assertGreater(source_id, 0)
        GLib.timeout_add(200, loop.quit)
        loop.run()
        self.assertEqual(calls, ["first"])
