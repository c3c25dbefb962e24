"""App constants."""

from pathlib import Path
from tempfile import TemporaryDirectory

from platformdirs import user_data_dir

APP_NAME = "rungrep"
APP_AUTHOR = "rungrep"


class AppDirs:
    """App directories."""

    def __init__(self) -> None:
        """Initialize app directories."""
        self._temp_dir: TemporaryDirectory | None = None
        self._set_data_dir(Path(user_data_dir(appname=APP_NAME, appauthor=APP_AUTHOR)))

    def _set_data_dir(self, data_dir: Path) -> None:
        self.app_data_dir = data_dir
        self.app_config_path = self.app_data_dir / "config.json"
        self.app_history_path = self.app_data_dir / "runs.json"

    def use_temp_app_data_dir(self) -> None:
        """Set app data to a temporary directory."""
        self._temp_dir = TemporaryDirectory()
        self._set_data_dir(Path(self._temp_dir.name))


app_dirs = AppDirs()
