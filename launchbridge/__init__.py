"""launchbridge - load Python extensions into a launcher host."""

__version__ = "0.3.1"
__logo__ = "🚀"
