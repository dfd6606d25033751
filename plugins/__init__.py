"""Pipeline stage plugins discovered by monitor.plugin_loader."""
