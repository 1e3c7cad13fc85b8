"""Config dependencies."""

from pathlib import Path

import structlog

from ..config import Configuration
from ..exceptions import ProjectsConfigError
from ..models.projects import ProjectsConfig

__all__ = [
    "ConfigDependency",
    "ProjectsDependency",
    "config_dependency",
    "projects_dependency",
]


class ConfigDependency:
    """Dependency to manage the cached process settings.

    The settings are read from the environment on first use, cached, and
    returned to all dependency callers until `~ConfigDependency.reset` is
    called.
    """

    def __init__(self) -> None:
        self._config: Configuration | None = None

    async def __call__(self) -> Configuration:
        return self.config

    @property
    def config(self) -> Configuration:
        """Load configuration if needed and return it."""
        if self._config is None:
            self._config = Configuration()
        return self._config

    def reset(self) -> None:
        """Forget the cached settings so they are reread from the environment.

        Used by the test suite after changing environment variables.
        """
        self._config = None


class ProjectsDependency:
    """Dependency holding the current snapshot of the projects file.

    Each load produces a new frozen `ProjectsConfig` that replaces the
    previous one. Callers that grabbed the old snapshot keep working with it,
    so a request never sees a half-updated project list.

    Parameters
    ----------
    config
        Settings dependency, used to find the projects file.
    """

    def __init__(self, config: ConfigDependency) -> None:
        self._config = config
        self._path: Path | None = None
        self._snapshot: ProjectsConfig | None = None

    async def __call__(self) -> ProjectsConfig:
        return self.snapshot

    @property
    def path(self) -> Path:
        """Path of the projects file."""
        return self._path or self._config.config.projects_path

    @property
    def snapshot(self) -> ProjectsConfig:
        """Load the projects file if needed and return the current snapshot.

        Raises
        ------
        ProjectsConfigError
            Raised if there is no snapshot yet and the file cannot be loaded.
        """
        if self._snapshot is None:
            self._snapshot = ProjectsConfig.from_file(self.path)
        return self._snapshot

    def reload(self) -> ProjectsConfig:
        """Reload the projects file, keeping the old snapshot on failure.

        Returns
        -------
        ProjectsConfig
            The new snapshot, or the previous one if the file could not be
            loaded.

        Raises
        ------
        ProjectsConfigError
            Raised if the file cannot be loaded and there is no previous
            snapshot to fall back on.
        """
        try:
            self._snapshot = ProjectsConfig.from_file(self.path)
        except ProjectsConfigError as e:
            if self._snapshot is None:
                raise
            logger = structlog.get_logger("pushdeploy")
            logger.warning(
                "Keeping previous projects configuration",
                path=str(self.path),
                error=str(e),
            )
        return self._snapshot

    def set_path(self, path: Path) -> None:
        """Change the projects file path and load it.

        Parameters
        ----------
        path
            New projects file path.

        Raises
        ------
        ProjectsConfigError
            Raised if the new file cannot be loaded.
        """
        self._snapshot = ProjectsConfig.from_file(path)
        self._path = path


config_dependency = ConfigDependency()
"""The dependency that will return the process settings."""

projects_dependency = ProjectsDependency(config_dependency)
"""The dependency that will return the projects file snapshot."""
