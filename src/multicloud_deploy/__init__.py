# Este archivo marca el paquete multicloud_deploy y expone la versión del proyecto.

"""
multicloud-deploy - Idempotent Cloudflare + Google Cloud deployment orchestration.

Provides a deployment engine, a CLI and an MCP server.
"""

__version__ = "0.1.0"
__description__ = "Multi-cloud deployment orchestrator for Cloudflare Workers and Google Cloud"

__all__ = ["__version__"]
