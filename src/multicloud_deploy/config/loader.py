"""
Deployment config loading.

Reads the deployments JSON file, selects one environment and turns it into a
validated DeploymentSpec.

File layout (either form):

    {"environments": {"production": {...}, "staging": {...}}}
    {"production": {...}, "staging": {...}}

Each environment entry carries the DeploymentSpec fields (camelCase or
snake_case) and its secrets, nested under "secrets" or as top-level
UPPER_SNAKE_CASE keys.
"""
import json  # Lectura del archivo de configuración
import re  # Detectar claves de secretos en formato plano
from pathlib import Path  # Manejo moderno de rutas de archivos
from typing import Any, Dict, Iterable, List, Optional  # Type hints

from pydantic import ValidationError as PydanticValidationError

from ..exceptions import ConfigurationError, ValidationError
from ..models.deployment import DeploymentSpec
from ..utils.logging import get_logger
from ..utils.validation import validate_deployment_id, validate_resource_name, validate_secrets
from .settings import Settings, get_settings

logger = get_logger(__name__)

_FLAT_SECRET_KEY = re.compile(r'^[A-Z][A-Z0-9_]*$')


def read_config_file(path: Path) -> Dict[str, Any]:
    """
    Read and parse the deployments JSON file.

    Raises:
        ConfigurationError: If the file is missing or not a JSON object
    """
    if not path.is_file():
        raise ConfigurationError(
            f"Deployment config not found: {path}",
            context={"path": str(path)}
        )

    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigurationError(
            f"Invalid JSON in {path}: {e}",
            context={"path": str(path)}
        )

    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Deployment config must be a JSON object: {path}",
            context={"path": str(path)}
        )
    return data


def list_environments(data: Dict[str, Any]) -> List[str]:
    """Environment names defined in a parsed config file."""
    environments = data.get("environments", data)
    return sorted(name for name, entry in environments.items() if isinstance(entry, dict))


def select_environment(data: Dict[str, Any], environment: str) -> Dict[str, Any]:
    """
    Return the entry for one environment.

    Raises:
        ConfigurationError: If the environment is not defined
    """
    environments = data.get("environments", data)
    entry = environments.get(environment) if isinstance(environments, dict) else None
    if not isinstance(entry, dict):
        raise ConfigurationError(
            f"Environment '{environment}' not found",
            context={"environment": environment, "available": list_environments(data)}
        )
    return entry


def _collect_secrets(entry: Dict[str, Any]) -> Dict[str, str]:
    secrets = {}
    for key, value in entry.items():
        if _FLAT_SECRET_KEY.match(key) and isinstance(value, (str, int, float)):
            secrets[key] = str(value)
    nested = entry.get("secrets") or {}
    if not isinstance(nested, dict):
        raise ConfigurationError(
            "'secrets' must be a JSON object",
            context={"type": type(nested).__name__}
        )
    secrets.update({key: str(value) for key, value in nested.items()})
    return secrets


def build_spec(
    entry: Dict[str, Any],
    environment: str,
    required_secrets: Iterable[str] = (),
) -> DeploymentSpec:
    """
    Validate one environment entry and build its DeploymentSpec.

    Raises:
        ConfigurationError: If the entry does not form a valid deployment
        ValidationError: If a name, secret key or required secret is invalid
    """
    fields = {key: value for key, value in entry.items() if not _FLAT_SECRET_KEY.match(key)}
    fields["secrets"] = validate_secrets(_collect_secrets(entry), required_secrets)
    fields.setdefault("id", environment)
    fields.setdefault("name", environment)

    try:
        spec = DeploymentSpec.model_validate(fields)
    except PydanticValidationError as e:
        raise ConfigurationError(
            f"Invalid deployment config for '{environment}': {e.error_count()} error(s)",
            context={"environment": environment, "errors": e.errors(include_url=False, include_input=False)}
        )

    validate_deployment_id(spec.id)
    validate_resource_name(spec.compute_name, "worker")
    validate_resource_name(spec.static_site_name, "Pages project", max_length=58)
    validate_resource_name(spec.database_name, "database")
    validate_resource_name(spec.bucket_name, "bucket")
    return spec


def load_deployment_spec(
    environment: Optional[str] = None,
    config_file: Optional[Path] = None,
    settings: Optional[Settings] = None,
) -> DeploymentSpec:
    """
    Load the DeploymentSpec for an environment.

    Args:
        environment: Environment name (default: settings.deploy_env)
        config_file: Config path (default: settings.config_file)
        settings: Settings (default: get_settings())

    Returns:
        Validated DeploymentSpec

    Raises:
        ConfigurationError: If the file or environment is missing or invalid
        ValidationError: If names or secrets fail validation
    """
    settings = settings or get_settings()
    environment = environment or settings.deploy_env
    path = Path(config_file or settings.config_file)

    entry = select_environment(read_config_file(path), environment)
    try:
        spec = build_spec(entry, environment, settings.required_secret_keys)
    except ValidationError as e:
        e.context.setdefault("environment", environment)
        raise

    logger.info(
        "deployment_config_loaded",
        environment=environment,
        deployment_id=spec.id,
        secrets=len(spec.secrets),
    )
    return spec


def apply_overrides(spec: DeploymentSpec, settings: Optional[Settings] = None) -> DeploymentSpec:
    """Apply environment-level overrides (DEPLOY_PAGES) to a loaded spec."""
    settings = settings or get_settings()
    if settings.deploy_pages is None or settings.deploy_pages == spec.deploy_static_site:
        return spec
    logger.info("static_site_override", deploy_static_site=settings.deploy_pages)
    return spec.model_copy(update={"deploy_static_site": settings.deploy_pages})
