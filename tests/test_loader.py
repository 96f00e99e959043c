import sys
import time

import pytest
from loguru import logger

from launchbridge.host import Query
from launchbridge.plugins.core.types import LoaderState
from launchbridge.plugins.native.loader import ExtensionLoader
from launchbridge.utils.exceptions import (
    BridgeError,
    DependencyInstallError,
    EntryClassTypeError,
    ExtensionExecutionError,
    InvalidManifestError,
    MissingBinaryDependencyError,
)

HELLO = '''
from launchbridge import api

class Plugin(api.PluginInstance, api.GeneratorQueryHandler):
    def items(self, query):
        yield [api.StandardItem(id="hi", text="Hello " + query.string)]
'''

LIFECYCLE = '''
import lb_probe
from launchbridge import api

lb_probe.executed += 1

class Plugin(api.PluginInstance):
    def __del__(self):
        lb_probe.finalized += 1
'''

TIMEOUT = 10


def _load(provider, plugin_id):
    loader = provider.loader(plugin_id)
    assert loader is not None
    loader.load().result(timeout=TIMEOUT)
    return loader


def _load_error(loader):
    with pytest.raises(BridgeError) as exc_info:
        loader.load().result(timeout=TIMEOUT)
    return exc_info.value


def test_load_plugin_that_is_its_own_extension(provider, write_plugin):
    write_plugin("hello", HELLO)
    provider.scan()
    loader = provider.loader("python.hello")
    assert loader.state is LoaderState.VALIDATED

    message = loader.load().result(timeout=TIMEOUT)
    assert message.startswith("python.hello loaded in ")
    assert loader.state is LoaderState.LOADED

    extensions = loader.instance().extensions()
    assert [e.id() for e in extensions] == ["python.hello"]
    assert extensions[0].name() == "hello"
    assert extensions[0].description() == "hello test plugin"
    batch = next(extensions[0].items(Query("world")))
    assert batch[0].text() == "Hello world"


def test_plain_instance_has_no_extensions(provider, write_plugin):
    write_plugin(
        "plain",
        '''
from launchbridge import api

class Plugin(api.PluginInstance):
    pass
''',
    )
    provider.scan()
    assert _load(provider, "python.plain").instance().extensions() == []


def test_extensions_override(provider, write_plugin):
    write_plugin(
        "empty",
        '''
from launchbridge import api

class Plugin(api.PluginInstance, api.GeneratorQueryHandler):
    def extensions(self):
        return []
''',
    )
    provider.scan()
    assert _load(provider, "python.empty").instance().extensions() == []


def test_load_unload_reload(provider, write_plugin, probe):
    write_plugin("life", LIFECYCLE)
    provider.scan()
    loader = _load(provider, "life")
    assert probe.executed == 1
    assert "launchbridge.python.life" in sys.modules

    loader.unload()
    assert loader.state is LoaderState.UNLOADED
    assert loader.instance() is None
    assert probe.finalized == 1
    assert "launchbridge.python.life" not in sys.modules

    loader.load().result(timeout=TIMEOUT)
    assert probe.executed == 2
    assert loader.state is LoaderState.LOADED


def test_reloaded_instance_is_equivalent(provider, write_plugin):
    write_plugin(
        "echo",
        '''
from launchbridge import api

class Plugin(api.PluginInstance, api.GeneratorQueryHandler):
    def items(self, query):
        yield [api.StandardItem(id="echo", text=query.string)]
''',
    )
    provider.scan()
    loader = _load(provider, "python.echo")

    def describe():
        return [(e.id(), e.name(), e.description()) for e in loader.instance().extensions()]

    before = describe()
    assert before == [("python.echo", "echo", "echo test plugin")]
    loader.unload()
    loader.load().result(timeout=TIMEOUT)
    assert describe() == before
    (extension,) = loader.instance().extensions()
    assert [[i.text() for i in batch] for batch in extension.items(Query("hi"))] == [["hi"]]


def test_load_twice_is_rejected(provider, write_plugin, probe):
    write_plugin("life", LIFECYCLE)
    provider.scan()
    loader = _load(provider, "life")
    with pytest.raises(RuntimeError):
        loader.load()


def test_missing_binary_dependency_never_executes(provider, write_plugin, probe):
    write_plugin("needsbin", LIFECYCLE + 'md_bin_dependencies = ["launchbridge-no-such-binary"]\n')
    provider.scan()
    loader = provider.loader("needsbin")
    assert loader.manifest.binary_dependencies == ("launchbridge-no-such-binary",)

    err = _load_error(loader)
    assert isinstance(err, MissingBinaryDependencyError)
    assert str(err) == "No 'launchbridge-no-such-binary' in $PATH."
    assert probe.executed == 0
    assert loader.state is LoaderState.LOAD_FAILED
    assert loader.error == str(err)

    loader.unload()
    assert loader.state is LoaderState.UNLOADED


def test_entry_class_of_wrong_type(provider, write_plugin):
    write_plugin("wrongtype", "class Plugin:\n    pass\n")
    provider.scan()
    err = _load_error(provider.loader("wrongtype"))
    assert isinstance(err, EntryClassTypeError)
    assert "PluginInstance" in str(err)
    assert "launchbridge.python.wrongtype" not in sys.modules


def test_module_raising_at_import(provider, write_plugin):
    write_plugin("raises", 'raise RuntimeError("broken at import")\n')
    provider.scan()
    loader = provider.loader("raises")
    err = _load_error(loader)
    assert isinstance(err, ExtensionExecutionError)
    assert str(err) == "RuntimeError: broken at import"
    assert loader.state is LoaderState.LOAD_FAILED


def test_module_without_entry_class(provider, write_plugin):
    write_plugin("noentry", "VALUE = 1\n")
    provider.scan()
    err = _load_error(provider.loader("noentry"))
    assert isinstance(err, ExtensionExecutionError)
    assert "AttributeError" in str(err)
    assert "Plugin" in str(err)


def test_entry_constructor_raising(provider, write_plugin):
    write_plugin(
        "badinit",
        '''
from launchbridge import api

class Plugin(api.PluginInstance):
    def __init__(self):
        super().__init__()
        raise ValueError("cannot start")
''',
    )
    provider.scan()
    err = _load_error(provider.loader("badinit"))
    assert str(err) == "ValueError: cannot start"


def test_plugin_instance_outside_loading_is_refused():
    from launchbridge import api

    with pytest.raises(RuntimeError):
        api.PluginInstance()


def test_scan_skips_non_candidates_and_records_diagnostics(provider, write_plugin, plugins_dir):
    write_plugin("hello", HELLO)
    (plugins_dir / "notes.txt").write_text("not a plugin", encoding="utf-8")
    (plugins_dir / "assets").mkdir()
    (plugins_dir / "broken.py").write_text("md_iid = '3.1'\ndef broken(:\n", encoding="utf-8")

    loaders = provider.scan()
    assert [loader.id for loader in loaders] == ["python.hello"]
    assert len(provider.diagnostics) == 1
    assert provider.diagnostics[0]["code"] == "MANIFEST_PARSE_ERROR"
    assert provider.diagnostics[0]["path"].endswith("broken.py")


def test_missing_path_is_a_file_error(provider, tmp_path):
    with pytest.raises(BridgeError) as exc_info:
        ExtensionLoader(provider, tmp_path / "nope.py")
    assert exc_info.value.code == "FILE_ERROR"


def test_rejected_plugin_stays_listed_and_refuses_to_load(provider, write_plugin, probe):
    write_plugin("old", LIFECYCLE, iid="2.0")
    provider.scan()
    loader = provider.loader("python.old")
    assert loader.state is LoaderState.REJECTED
    assert "Incompatible major" in loader.error
    with pytest.raises(InvalidManifestError):
        loader.load()
    assert probe.executed == 0
    assert loader.to_record().state == "rejected"


def test_duplicate_ids_keep_the_first_data_location(provider, bridge_config, write_plugin, tmp_path):
    write_plugin("hello", HELLO)
    extra_plugins = tmp_path / "extra" / "plugins"
    extra_plugins.mkdir(parents=True)
    (extra_plugins / "hello.py").write_text('md_iid = "3.1"\n', encoding="utf-8")
    bridge_config.plugins.extra_data_locations = [str(tmp_path / "extra")]

    loaders = provider.scan()
    assert len(loaders) == 1
    assert loaders[0].path.parent != extra_plugins
    assert [d["code"] for d in provider.diagnostics] == ["DUPLICATE_PLUGIN_ID"]


def test_rescan_unloads_loaded_plugins(provider, write_plugin, probe):
    write_plugin("life", LIFECYCLE)
    provider.scan()
    old = _load(provider, "life")
    provider.scan()
    assert old.state is LoaderState.UNLOADED
    assert probe.finalized == 1
    assert provider.loader("life") is not old
    assert provider.loader("life").state is LoaderState.VALIDATED


def test_package_plugin_with_relative_import(provider, write_plugin, plugins_dir):
    root = write_plugin(
        "pkg",
        '''
from launchbridge import api
from .helper import GREETING

class Plugin(api.PluginInstance, api.GeneratorQueryHandler):
    def items(self, query):
        yield [api.StandardItem(id="g", text=GREETING)]
''',
        package=True,
    )
    (root / "helper.py").write_text('GREETING = "from helper"\n', encoding="utf-8")
    provider.scan()
    loader = _load(provider, "python.pkg")
    assert loader.is_package
    assert "launchbridge.python.pkg.helper" in sys.modules
    ext = loader.instance().extensions()[0]
    assert next(ext.items(Query("")))[0].text() == "from helper"

    del ext
    loader.unload()
    assert "launchbridge.python.pkg" not in sys.modules
    assert "launchbridge.python.pkg.helper" not in sys.modules


def test_injected_log_functions_use_plugin_channel(provider, write_plugin):
    write_plugin(
        "chatty",
        '''
from launchbridge import api

info("module executing")

class Plugin(api.PluginInstance):
    pass
''',
    )
    records = []
    sink_id = logger.add(
        lambda msg: records.append((msg.record["extra"].get("channel"), msg.record["message"])),
        level="INFO",
    )
    try:
        provider.scan()
        _load(provider, "chatty")
    finally:
        logger.remove(sink_id)
    assert ("launchbridge.python.chatty", "module executing") in records


def test_plugin_settings_and_locations(provider, write_plugin, probe):
    write_plugin(
        "cfg",
        '''
import lb_probe
from launchbridge import api

class Plugin(api.PluginInstance):
    def __init__(self):
        super().__init__()
        self.writeConfig("count", 3)
        self.writeConfig("bad", [1, 2])
        lb_probe.calls.append(self.readConfig("count", int))
        lb_probe.calls.append(self.readConfig("count", str))
        lb_probe.calls.append(self.readConfig("bad", int))
        lb_probe.calls.append(self.dataLocation())
        lb_probe.calls.append(self.cacheLocation())
        lb_probe.calls.append(self.configLocation())
''',
    )
    provider.scan()
    _load(provider, "cfg")
    data_dir = provider.data_dir
    assert probe.calls == [
        3,
        "3",
        None,
        data_dir / "data" / "python.cfg",
        data_dir / "cache" / "python.cfg",
        data_dir / "config" / "python.cfg",
    ]
    assert provider.settings.value("python.cfg", "count") == 3
    assert (data_dir / "settings.json").exists()


def test_dependency_install_failure(provider, write_plugin, probe, monkeypatch):
    calls = []
    monkeypatch.setattr(provider, "check_packages", lambda pkgs: calls.append(("check", pkgs)) or False)
    monkeypatch.setattr(provider, "install_packages", lambda pkgs: calls.append(("install", pkgs)) or "pip exploded")
    write_plugin("deps", LIFECYCLE + 'md_lib_dependencies = ["requests"]\n')
    provider.scan()

    err = _load_error(provider.loader("deps"))
    assert isinstance(err, DependencyInstallError)
    assert "pip exploded" in str(err)
    assert calls == [("check", ["requests"]), ("install", ["requests"])]
    assert probe.executed == 0


def test_dependency_install_success(provider, write_plugin, probe, monkeypatch):
    calls = []
    monkeypatch.setattr(provider, "check_packages", lambda pkgs: calls.append("check") or False)
    monkeypatch.setattr(provider, "install_packages", lambda pkgs: calls.append("install"))
    write_plugin("deps", LIFECYCLE + 'md_lib_dependencies = ["requests"]\n')
    provider.scan()
    _load(provider, "deps")
    assert calls == ["check", "install"]
    assert probe.executed == 1


def test_on_finished_callbacks(provider, write_plugin):
    write_plugin("hello", HELLO)
    write_plugin("raises", 'raise RuntimeError("nope")\n')
    provider.scan()
    events = []

    ok = provider.loader("hello")
    ok.on_finished.append(lambda loader, error: events.append((loader.id, error)))
    ok.load().result(timeout=TIMEOUT)

    failing = provider.loader("raises")
    failing.on_finished.append(lambda loader, error: events.append((loader.id, type(error).__name__)))
    _load_error(failing)

    assert events == [("python.hello", None), ("python.raises", "ExtensionExecutionError")]


def test_provider_status_and_lookup(provider, write_plugin):
    write_plugin("hello", HELLO)
    write_plugin("old", "", iid="9.9")
    provider.scan()
    provider.load("hello").result(timeout=TIMEOUT)

    snapshot = provider.status()
    assert snapshot.interface_version == "3.1"
    records = {r.id: r for r in snapshot.plugins}
    assert records["python.hello"].state == "loaded"
    assert records["python.hello"].extension_ids == ["python.hello"]
    assert records["python.old"].state == "rejected"
    assert provider.status_dict()["plugins"][0]["id"] in records

    with pytest.raises(BridgeError) as exc_info:
        provider.load("missing")
    assert exc_info.value.code == "PLUGIN_NOT_FOUND"

    provider.unload("python.hello")
    assert provider.loader("hello").state is LoaderState.UNLOADED


def test_initialize_scans_and_autoloads(provider, bridge_config, write_plugin):
    write_plugin("hello", HELLO)
    bridge_config.plugins.autoload = ["python.hello"]
    loaders = provider.initialize().result(timeout=TIMEOUT)
    assert [loader.id for loader in loaders] == ["python.hello"]

    loader = provider.loader("python.hello")
    deadline = time.monotonic() + TIMEOUT
    while loader.state is not LoaderState.LOADED and time.monotonic() < deadline:
        time.sleep(0.01)
    assert loader.state is LoaderState.LOADED


def test_disabled_environment_reports_install_error(provider):
    assert provider.check_packages(["pytest"]) is True
    assert provider.check_packages(["launchbridge-no-such-distribution"]) is False
    error = provider.install_packages(["requests"])
    assert error is not None and "requests" in error
