"""Python plugin bridge: discovery, runtime, loaders and adapters.

Submodules are imported directly (``launchbridge.plugins.manager`` and so on);
this package stays import-light because the author API depends on the runtime.
"""
