"""Command line interface"""
import argparse
import json
import shlex
import sys
from gettext import gettext as _

from gi.repository import GLib

from branchkeeper import settings
from branchkeeper.config import ConfigStore
from branchkeeper.exceptions import BranchKeeperError
from branchkeeper.manager import BranchManager
from branchkeeper.models import BRANCH_NAMES
from branchkeeper.util.jobs import AsyncCall
from branchkeeper.util.log import enable_debug, logger
from branchkeeper.util.strings import human_size


def get_parser():
    parser = argparse.ArgumentParser(prog=settings.PROJECT, description=_("Manage parallel installs of game branches"))
    parser.add_argument("--version", action="version", version="%s %s" % (settings.PROJECT, settings.VERSION))
    parser.add_argument("-d", "--debug", action="store_true", help=_("Show debug messages"))
    parser.add_argument("-c", "--config", metavar="PATH", help=_("Use another configuration file"))
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    subparsers.add_parser("status", help=_("Show the status of every branch"))
    for command, help_text in (
        ("install", _("Copy the Steam install into a branch")),
        ("update", _("Refresh a branch from the Steam install")),
        ("delete", _("Delete a branch folder")),
    ):
        subparser = subparsers.add_parser(command, help=help_text)
        subparser.add_argument("branch", choices=BRANCH_NAMES)

    launch_parser = subparsers.add_parser("launch-command", help=_("Show or set the command starting a branch"))
    launch_parser.add_argument("branch", choices=BRANCH_NAMES)
    launch_parser.add_argument("launch_command", nargs="?", metavar="COMMAND", help=_("New command"))
    launch_parser.add_argument("--clear", action="store_true", help=_("Use the game executable again"))

    config_parser = subparsers.add_parser("config", help=_("Manage the configuration"))
    config_subparsers = config_parser.add_subparsers(dest="config_command", metavar="ACTION")
    config_subparsers.required = True
    config_subparsers.add_parser("show", help=_("Print the configuration"))
    config_subparsers.add_parser("validate", help=_("Check the configuration"))
    reset_parser = config_subparsers.add_parser("reset", help=_("Restore the default configuration"))
    reset_parser.add_argument("--no-backup", action="store_true", help=_("Don't keep the previous file"))
    paths_parser = config_subparsers.add_parser("set-paths", help=_("Set the library and environment paths"))
    paths_parser.add_argument("--steam-library", metavar="PATH")
    paths_parser.add_argument("--game-install", metavar="PATH")
    paths_parser.add_argument("--managed-environment", metavar="PATH")

    subparsers.add_parser("heal", help=_("Forget branches that are missing or broken"))
    return parser


def print_status(manager):
    for info in manager.refresh():
        current = "*" if info.is_current_steam_branch else " "
        print(
            "%s %-22s %-17s local: %-10s steam: %-10s %10s %4s mods"
            % (
                current,
                info.display_name,
                info.status.description,
                info.local_build_id or "---",
                info.steam_build_id or "---",
                info.formatted_size,
                info.mods_dll_count,
            )
        )
        if info.manifest_drift:
            print("    " + _("Steam reports a newer manifest than the one copied with this branch"))
        if info.error:
            print("    " + info.error)
    return 0


def print_progress(progress):
    sys.stdout.write("\r%5.1f%% %s/%s files" % (progress.percent, progress.completed_files, progress.total_files))
    if progress.completed_files == progress.total_files:
        sys.stdout.write("\n")
    sys.stdout.flush()


def run_transfer(manager, func, branch_name):
    """Run a transfer in a thread until it completes. Ctrl+C cancels it."""
    loop = GLib.MainLoop()
    outcome = {}

    def on_transfer_done(result, error):
        outcome["result"] = result
        outcome["error"] = error
        loop.quit()

    AsyncCall(func, on_transfer_done, branch_name, progress_callback=print_progress)
    while not outcome:
        try:
            loop.run()
        except KeyboardInterrupt:
            if manager.cancel():
                print(_("\nCancelling, waiting for the current file..."))
            else:
                print(_("\nCancelling before the transfer starts..."))

    if outcome.get("error"):
        raise outcome["error"]
    result = outcome["result"]
    if result.cancelled:
        print(_("Cancelled after {done} of {total} files, {path} is incomplete").format(
            done=result.completed_files, total=result.total_files, path=result.partial_directory
        ))
        return 1
    print(_("Done: {} files").format(result.total_files))
    return 0


def run_launch_command(manager, args):
    if args.clear or args.launch_command is not None:
        manager.registry.set_custom_launch_command(args.branch, "" if args.clear else args.launch_command)
    print(" ".join(shlex.quote(arg) for arg in manager.get_launch_command(args.branch)))
    return 0


def run_config_command(manager, args):
    store = manager.store
    if args.config_command == "reset":
        store.reset(backup=not args.no_backup)
        print(_("Configuration reset"))
        return 0
    if args.config_command == "set-paths":
        store.set_paths(
            steam_library_path=args.steam_library,
            game_install_path=args.game_install,
            managed_environment_path=args.managed_environment,
        )
    if args.config_command == "validate":
        validation = store.validate()
        for error in validation.errors:
            print(_("Error: {}").format(error))
        for warning in validation.warnings:
            print(_("Warning: {}").format(warning))
        if validation.is_valid and not validation.warnings:
            print(_("The configuration is valid"))
        return 0 if validation.is_valid else 1
    print(json.dumps(store.get().to_dict(), indent=2))
    return 0


def run_heal(manager):
    removed = manager.heal()
    if removed:
        print(_("Removed: {}").format(", ".join(removed)))
    else:
        print(_("Nothing to remove"))
    return 0


def run(manager, args):
    if args.command == "status":
        return print_status(manager)
    if args.command == "install":
        return run_transfer(manager, manager.install_branch, args.branch)
    if args.command == "update":
        return run_transfer(manager, manager.update_branch, args.branch)
    if args.command == "delete":
        info = manager.refresh([args.branch])[0]
        if info.directory_size:
            logger.info("Deleting %s (%s)", info.folder_path, human_size(info.directory_size))
        return run_transfer(manager, manager.delete_branch, args.branch)
    if args.command == "launch-command":
        return run_launch_command(manager, args)
    if args.command == "config":
        return run_config_command(manager, args)
    if args.command == "heal":
        return run_heal(manager)
    raise ValueError("Unknown command %s" % args.command)


def main(argv=None):
    args = get_parser().parse_args(argv)
    if args.debug:
        enable_debug()
    manager = BranchManager(store=ConfigStore(args.config))
    try:
        return run(manager, args)
    except BranchKeeperError as ex:
        logger.error(ex.message)
        return 1
