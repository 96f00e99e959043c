"""Configuration schema using Pydantic.

The single data model for bridge settings and their defaults, persisted to
~/.launchbridge/config.json.
"""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings

from launchbridge.utils.helpers import get_data_path


class EnvironmentConfig(BaseModel):
    """Isolated package environment (venv) settings."""
    enabled: bool = True
    python_executable: str = ""  # Interpreter used to create the venv; empty = sys.executable
    process_timeout_seconds: float = 300.0  # pip / venv subprocess timeout


class QueryConfig(BaseModel):
    """Streaming query protocol tunables."""
    batch_size: int = Field(default=10, ge=1)


class PluginsConfig(BaseModel):
    """Python plugin discovery and loading."""
    extra_data_locations: list[str] = Field(default_factory=list)  # Scanned as <location>/plugins
    autoload: list[str] = Field(default_factory=list)  # Plugin ids loaded on provider start


class BridgeConfig(BaseSettings):
    """Root configuration for launchbridge."""
    data_dir: str = Field(default_factory=lambda: str(get_data_path()))
    environment: EnvironmentConfig = Field(default_factory=EnvironmentConfig)
    query: QueryConfig = Field(default_factory=QueryConfig)
    plugins: PluginsConfig = Field(default_factory=PluginsConfig)

    @property
    def data_path(self) -> Path:
        """Expanded data directory."""
        return Path(self.data_dir).expanduser()

    def data_locations(self) -> list[Path]:
        """Data locations in scan order; the primary data dir comes first."""
        locations = [self.data_path]
        for raw in self.plugins.extra_data_locations:
            if isinstance(raw, str) and raw.strip():
                locations.append(Path(raw.strip()).expanduser())
        seen: set[str] = set()
        out: list[Path] = []
        for location in locations:
            key = str(location.resolve()) if location.exists() else str(location)
            if key not in seen:
                seen.add(key)
                out.append(location)
        return out

    model_config = ConfigDict(
        env_prefix="LAUNCHBRIDGE_",
        env_nested_delimiter="__"
    )
