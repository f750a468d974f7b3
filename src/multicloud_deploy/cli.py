"""
Command-line interface.

    DEPLOY_ENV=staging DEPLOY_PAGES=false multicloud-deploy

Exit codes: 0 success, 1 a hard step failed, 2 configuration error.
"""
import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from .config.loader import apply_overrides, load_deployment_spec
from .config.settings import Settings, get_settings
from .engine.orchestrator import DeploymentEngine, deploy_and_record
from .exceptions import DeployError
from .models.deployment import DeploymentResult
from .utils.command_runner import CommandExecutor
from .utils.history_store import DeploymentHistoryStore
from .utils.logging import configure_logging, get_logger

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_DEPLOY_FAILED = 1
EXIT_CONFIG_ERROR = 2

_STATUS_MARKS = {"completed": "OK", "warning": "WARN", "failed": "FAIL", "running": ".."}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="multicloud-deploy",
        description="Deploy a Cloudflare worker, its resources and static site, with Google Cloud setup.",
    )
    parser.add_argument(
        "--env",
        dest="environment",
        default=None,
        help="Environment to deploy (default: DEPLOY_ENV or 'production')",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to the deployments JSON file",
    )
    parser.add_argument(
        "--codebase",
        type=Path,
        default=None,
        help="Worker codebase directory (schema.sql, r2-cors.json, static site)",
    )
    static = parser.add_mutually_exclusive_group()
    static.add_argument(
        "--static-site", dest="static_site", action="store_true", default=None,
        help="Deploy the static site (overrides DEPLOY_PAGES)",
    )
    static.add_argument(
        "--no-static-site", dest="static_site", action="store_false",
        help="Skip the static site (overrides DEPLOY_PAGES)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Print command output lines")
    return parser


def console_sink(verbose: bool = False):
    """Progress sink printing one line per status change to stdout."""
    def sink(step: str, status: str, details: str, log_line: Optional[str] = None) -> None:
        if log_line is not None:
            if verbose:
                print(f"    {log_line}")
            return
        print(f"[{_STATUS_MARKS.get(status, status):>4}] {step}: {details}", flush=True)
    return sink


def print_summary(result: DeploymentResult) -> None:
    print()
    if result.success:
        print("Deployment succeeded" + (" with warnings" if result.errors else ""))
    else:
        print(f"Deployment failed: {result.error}")

    if result.compute_url:
        print(f"  Worker:      {result.compute_url}")
    if result.static_url:
        print(f"  Static site: {result.static_url}")
    if result.bucket_public_url:
        print(f"  Bucket:      {result.bucket_public_url}")

    for error in result.errors or []:
        print(f"  - {error.step}: {error.error}")


async def run_deployment(args: argparse.Namespace, settings: Settings) -> int:
    try:
        spec = apply_overrides(load_deployment_spec(args.environment, args.config, settings), settings)
    except DeployError as e:
        logger.error("deployment_config_invalid", error=str(e), context=e.context)
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    if args.static_site is not None:
        spec = spec.model_copy(update={"deploy_static_site": args.static_site})

    engine = DeploymentEngine(CommandExecutor.from_settings(settings), settings=settings)
    store = DeploymentHistoryStore(settings.history_dir, settings.history_limit)

    print(f"Deploying '{spec.id}'")
    result = await deploy_and_record(engine, spec, store, console_sink(args.verbose))
    print_summary(result)
    return EXIT_OK if result.success else EXIT_DEPLOY_FAILED


def main(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, run one deployment and return the exit code."""
    args = build_parser().parse_args(argv)

    settings = get_settings()
    if args.codebase is not None:
        settings = settings.model_copy(update={"codebase_path": args.codebase})

    settings.ensure_directories()
    configure_logging(settings)

    return asyncio.run(run_deployment(args, settings))


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
