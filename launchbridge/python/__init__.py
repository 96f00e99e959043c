"""Parent package of loaded plugin modules (launchbridge.python.<module>)."""
