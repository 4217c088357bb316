"""Configuration schema migrations.

Each module of MIGRATIONS upgrades one schema version to the next. A module
exposes SOURCE_VERSION, TARGET_VERSION, load() which reads a raw payload
into the source type, and a pure migrate() which returns the target type.
"""
import importlib
from typing import Any, Dict

from branchkeeper.exceptions import UnsupportedConfigVersionError
from branchkeeper.models import CONFIG_VERSION, DevEnvironmentConfig
from branchkeeper.util.log import logger

# Payloads written before the version field existed are 1.0
DEFAULT_SOURCE_VERSION = "1.0"

# In upgrade order
MIGRATIONS = [
    "config_v1_to_v2",
]


def get_migration_module(migration_name):
    return importlib.import_module("branchkeeper.migrations.%s" % migration_name)


def get_config_version(data: Dict[str, Any]) -> str:
    """Return the schema version of a raw payload"""
    version = data.get("configVersion")
    if version is None or str(version).strip() == "":
        return DEFAULT_SOURCE_VERSION
    return str(version).strip()


def needs_migration(data: Dict[str, Any]) -> bool:
    return get_config_version(data) != CONFIG_VERSION


def migrate(data: Dict[str, Any]) -> DevEnvironmentConfig:
    """Decode a raw payload of any supported version into the current model.

    Raises UnsupportedConfigVersionError when no chain of migrations leads
    from the payload version to the current one. Decoding errors of the
    payload (TypeError, ValueError) are left to the caller.
    """
    version = get_config_version(data)
    if version == CONFIG_VERSION:
        return DevEnvironmentConfig.from_dict(data)

    migrations = {}
    for migration_name in MIGRATIONS:
        migration = get_migration_module(migration_name)
        migrations[migration.SOURCE_VERSION] = migration

    if version not in migrations:
        raise UnsupportedConfigVersionError(version)

    payload = data
    while version != CONFIG_VERSION:
        migration = migrations.get(version)
        if not migration:
            raise UnsupportedConfigVersionError(version)
        logger.info("Migrating configuration from version %s to %s", version, migration.TARGET_VERSION)
        config = migration.migrate(migration.load(payload))
        payload = config.to_dict()
        version = migration.TARGET_VERSION
    return DevEnvironmentConfig.from_dict(payload)
