"""Exception handling module"""

from gettext import gettext as _


class BranchKeeperError(Exception):
    """Base exception for branchkeeper related errors"""

    def __init__(self, message, *args, **kwarg):
        super().__init__(message, *args, **kwarg)
        self.message = message


class MalformedManifestError(BranchKeeperError):
    """Raised when an app manifest has neither an app id nor a build id."""

    def __init__(self, message=None, *args, **kwarg):
        super().__init__(message or _("The app manifest has no appid and no buildid"), *args, **kwarg)


class ConfigCorruptError(BranchKeeperError):
    """Raised when the persisted configuration can't be read or migrated.
    The file is left untouched; the user has to decide whether to reset it."""

    def __init__(self, message=None, path=None, *args, **kwarg):
        if not message:
            message = _("The configuration file {} is corrupt").format(path)
        super().__init__(message, *args, **kwarg)
        self.path = path


class UnsupportedConfigVersionError(ConfigCorruptError):
    """Raised for configuration versions no migration knows about."""

    def __init__(self, version, path=None, *args, **kwarg):
        message = _("Configuration version {} is not supported").format(version)
        super().__init__(message, path, *args, **kwarg)
        self.version = version


class InvalidBranchError(BranchKeeperError):
    """Raised for branch names outside of the known branches."""

    def __init__(self, branch_name, *args, **kwarg):
        super().__init__(_("Unknown branch: {}").format(branch_name), *args, **kwarg)
        self.branch_name = branch_name


class BranchBusyError(BranchKeeperError):
    """Raised when a transfer is requested for a branch that already has one running."""

    def __init__(self, branch_name, *args, **kwarg):
        super().__init__(_("A transfer is already running for {}").format(branch_name), *args, **kwarg)
        self.branch_name = branch_name


class BranchStatusError(BranchKeeperError):
    """Wraps the manifest or config error that prevented a status from being resolved."""

    def __init__(self, message, cause=None, *args, **kwarg):
        super().__init__(message, *args, **kwarg)
        self.cause = cause


class TransferFailedError(BranchKeeperError):
    """Raised when a file could not be copied or deleted, even after retrying."""

    def __init__(self, path, cause, partial_directory=None, *args, **kwarg):
        message = _("Failed to transfer {path}: {cause}").format(path=path, cause=cause)
        super().__init__(message, *args, **kwarg)
        self.path = path
        self.cause = cause
        self.partial_directory = partial_directory
