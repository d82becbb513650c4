"""Driver and MCP server for MagVenture MagPro magnetic stimulators."""

__version__ = "0.1.0"
