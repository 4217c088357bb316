"""Persisted configuration of the managed environment"""
import json
import os
import shutil
import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from branchkeeper import settings
from branchkeeper.exceptions import ConfigCorruptError, UnsupportedConfigVersionError
from branchkeeper.migrations import migrate, needs_migration
from branchkeeper.models import CONFIG_VERSION, DevEnvironmentConfig, check_branch, get_branch_list
from branchkeeper.util.log import logger
from branchkeeper.util.system import create_folder, path_exists

# Serializes every read-modify-write of the configuration file
CONFIG_LOCK = threading.RLock()


@dataclass
class ConfigValidation:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


class ConfigStore:
    """Owns the configuration file.

    Readers get copies of the configuration; every change goes through
    update(), which stamps lastUpdated and writes the file back. Older
    schema versions are migrated when the file is loaded.
    """

    def __init__(self, path: str = None):
        self.path = path or settings.CONFIG_FILE
        self._config: Optional[DevEnvironmentConfig] = None

    def __repr__(self):
        return "ConfigStore <%s>" % self.path

    def exists(self) -> bool:
        return path_exists(self.path)

    def _read_payload(self):
        try:
            with open(self.path, "r", encoding="utf-8") as config_file:
                data = json.load(config_file)
        except (OSError, ValueError) as ex:
            raise ConfigCorruptError(path=self.path) from ex
        if not isinstance(data, dict):
            raise ConfigCorruptError(path=self.path)
        return data

    def load(self) -> DevEnvironmentConfig:
        """Read the configuration file, creating it with defaults if it
        doesn't exist. Raises ConfigCorruptError if it can't be used; the
        file is not modified in that case."""
        with CONFIG_LOCK:
            if not self.exists():
                logger.info("No configuration found, creating %s", self.path)
                config = DevEnvironmentConfig()
                self._write(config)
                self._config = config
                return config.copy()

            data = self._read_payload()
            try:
                config = migrate(data)
            except UnsupportedConfigVersionError as ex:
                ex.path = self.path
                raise
            except (TypeError, ValueError, KeyError) as ex:
                logger.error("Invalid configuration in %s: %s", self.path, ex)
                raise ConfigCorruptError(path=self.path) from ex
            if needs_migration(data):
                logger.info("Saving configuration migrated to version %s", config.config_version)
                self._write(config)
            self._config = config
            return config.copy()

    def get(self) -> DevEnvironmentConfig:
        """Return a copy of the current configuration"""
        with CONFIG_LOCK:
            if self._config is None:
                return self.load()
            return self._config.copy()

    def update(self, func: Callable[[DevEnvironmentConfig], None]) -> DevEnvironmentConfig:
        """Apply func to a working copy of the configuration and save it.
        If func raises, nothing is written."""
        with CONFIG_LOCK:
            config = self.get()
            func(config)
            return self.save(config)

    def save(self, config: DevEnvironmentConfig) -> DevEnvironmentConfig:
        with CONFIG_LOCK:
            config = config.copy()
            config.touch()
            self._write(config)
            self._config = config
            return config.copy()

    def reset(self, backup: bool = True) -> DevEnvironmentConfig:
        """Replace the configuration with defaults. The previous file is
        kept as config.json.corrupt when backup is set."""
        with CONFIG_LOCK:
            if self.exists():
                if backup:
                    backup_path = self.path + ".corrupt"
                    logger.warning("Moving %s to %s", self.path, backup_path)
                    shutil.move(self.path, backup_path)
                else:
                    os.remove(self.path)
            config = DevEnvironmentConfig()
            self._write(config)
            self._config = config
            return config.copy()

    def _write(self, config: DevEnvironmentConfig) -> None:
        create_folder(os.path.dirname(self.path))
        temp_path = self.path + ".tmp"
        try:
            with open(temp_path, "w", encoding="utf-8") as config_file:
                json.dump(config.to_dict(), config_file, indent=2)
            os.replace(temp_path, self.path)
        finally:
            if os.path.isfile(temp_path):
                os.unlink(temp_path)

    def set_paths(self, steam_library_path=None, game_install_path=None, managed_environment_path=None):
        def _set_paths(config):
            if steam_library_path is not None:
                config.steam_library_path = steam_library_path
            if game_install_path is not None:
                config.game_install_path = game_install_path
            if managed_environment_path is not None:
                config.managed_environment_path = managed_environment_path

        return self.update(_set_paths)

    def set_selected_branches(self, branches: List[str]) -> DevEnvironmentConfig:
        branches = [check_branch(branch_name) for branch_name in get_branch_list(list(branches))]

        def _set_selected_branches(config):
            config.selected_branches = branches

        return self.update(_set_selected_branches)

    def set_installed_branch(self, branch_name: Optional[str]) -> DevEnvironmentConfig:
        if branch_name:
            check_branch(branch_name)

        def _set_installed_branch(config):
            config.installed_branch = branch_name or None

        return self.update(_set_installed_branch)

    def validate(self) -> ConfigValidation:
        """Check the configuration for missing or unusable values"""
        config = self.get()
        result = ConfigValidation()
        required_paths = (
            ("steamLibraryPath", config.steam_library_path),
            ("gameInstallPath", config.game_install_path),
            ("managedEnvironmentPath", config.managed_environment_path),
        )
        for key, value in required_paths:
            if not value or not value.strip():
                result.errors.append("%s is required" % key)
        if not config.config_version:
            result.errors.append("configVersion is required")

        if config.steam_library_path and not path_exists(config.steam_library_path):
            result.warnings.append("Steam library path does not exist: %s" % config.steam_library_path)
        if config.game_install_path:
            if not path_exists(config.game_install_path):
                result.warnings.append("Game install path does not exist: %s" % config.game_install_path)
            elif not path_exists(os.path.join(config.game_install_path, settings.GAME_EXECUTABLE)):
                result.warnings.append(
                    "%s not found in the game install path: %s" % (settings.GAME_EXECUTABLE, config.game_install_path)
                )
        if config.managed_environment_path and not path_exists(config.managed_environment_path):
            result.warnings.append("Managed environment path does not exist: %s" % config.managed_environment_path)
        if config.config_version and config.config_version != CONFIG_VERSION:
            result.warnings.append(
                "Config version %s may not be fully compatible with this version" % config.config_version
            )
        return result
