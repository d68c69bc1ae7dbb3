class GnashError(Exception):
    """Base class for every error gnash reports to the user."""


class ConfigError(GnashError):
    pass


class ManifestNotFound(GnashError):
    def __init__(self, path: str):
        super().__init__(f"package.json not found: {path}")
        self.path = path


class LockfileNotFound(GnashError):
    def __init__(self, path: str):
        super().__init__(f"package-lock.json not found: {path}")
        self.path = path


class InvalidManifest(GnashError):
    def __init__(self, path: str, reason: str):
        super().__init__(f"Error reading {path}: {reason}")
        self.path = path


class GraphInconsistency(GnashError):
    """A dependency declared in package.json is missing from package-lock.json."""

    def __init__(self, name: str):
        super().__init__(
            f"Dependencies of package.json and package-lock.json do not match: '{name}' is not in the lockfile"
        )
        self.name = name


class ModuleNotFound(GnashError):
    """A `requires` entry of the lockfile is not reachable from any active scope."""

    def __init__(self, name: str, required_by: str):
        super().__init__(f"Module '{name}' required by '{required_by}' not found in lockfile scopes")
        self.name = name
        self.required_by = required_by


class PathResolutionFailure(GnashError):
    def __init__(self, name: str, start: str):
        super().__init__(f"Could not find an installed copy of '{name}' starting from {start}")
        self.name = name
        self.start = start


class ParseError(GnashError):
    """Raised by the syntax adapter when a source file does not parse."""
