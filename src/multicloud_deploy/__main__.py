# Este archivo permite ejecutar el servidor MCP como módulo Python usando: python -m multicloud_deploy

"""
Entry point for running the multi-cloud deploy MCP server as a module.

Usage:
    python -m multicloud_deploy
"""

from .server import main

if __name__ == "__main__":
    main()
