"""safe-exec: a whitelisted command execution gateway for MCP clients."""

__version__ = "0.1.0"
