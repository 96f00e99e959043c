"""Loader for Python plugin modules and packages."""

from .loader import ENTRY_CLASS_NAME, MODULE_NAMESPACE, ExtensionLoader

__all__ = ["ENTRY_CLASS_NAME", "MODULE_NAMESPACE", "ExtensionLoader"]
