"""Pytest fixtures shared by the bridge tests."""

import sys
import textwrap
import types
from pathlib import Path

import pytest

from launchbridge.config.schema import BridgeConfig
from launchbridge.plugins.manager import PythonPluginProvider, reset_plugin_provider
from launchbridge.plugins.runtime import get_runtime, reset_runtime


@pytest.fixture
def runtime():
    reset_runtime()
    rt = get_runtime()
    rt.initialize()
    yield rt
    reset_plugin_provider()
    reset_runtime()


@pytest.fixture
def bridge_config(tmp_path: Path) -> BridgeConfig:
    cfg = BridgeConfig(data_dir=str(tmp_path / "data"))
    cfg.environment.enabled = False
    return cfg


@pytest.fixture
def plugins_dir(bridge_config: BridgeConfig) -> Path:
    directory = bridge_config.data_path / "plugins"
    directory.mkdir(parents=True, exist_ok=True)
    return directory


@pytest.fixture
def provider(runtime, bridge_config: BridgeConfig, plugins_dir: Path):
    p = PythonPluginProvider(bridge_config, runtime=runtime)
    yield p
    p.shutdown()


@pytest.fixture
def write_plugin(plugins_dir: Path):
    """Write a plugin module (or package) with a default 3.1 manifest header."""

    def _write(name: str, body: str, *, iid: str = "3.1", package: bool = False, header: str | None = None) -> Path:
        if header is None:
            header = f'md_iid = "{iid}"\nmd_name = "{name}"\nmd_description = "{name} test plugin"\n'
        text = header + textwrap.dedent(body)
        if package:
            root = plugins_dir / name
            root.mkdir(parents=True, exist_ok=True)
            (root / "__init__.py").write_text(text, encoding="utf-8")
            return root
        path = plugins_dir / f"{name}.py"
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def probe(monkeypatch):
    """Importable module `lb_probe` that plugin code can record side effects in."""
    module = types.ModuleType("lb_probe")
    module.executed = 0
    module.finalized = 0
    module.calls = []
    monkeypatch.setitem(sys.modules, "lb_probe", module)
    return module
