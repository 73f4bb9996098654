"""
Entry point for running the MCP server.

Usage:
    uv run python scripts/run_mcp_server.py
"""
from caselens.mcp.server import main

if __name__ == "__main__":
    main()
