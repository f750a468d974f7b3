"""
Input validation utilities.

Resource names, secret keys and SQL identifiers end up on provider command
lines or inside SQL text; they are checked here before any command runs.
"""
import re  # Expresiones regulares para validación de patrones
from typing import Dict, Iterable, List  # Type hints para colecciones

from ..exceptions import ValidationError  # Excepción personalizada para errores de validación
from .logging import get_logger  # Logger estructurado

logger = get_logger(__name__)

RESOURCE_NAME_PATTERN = r'^[a-z0-9][a-z0-9\-]*[a-z0-9]$|^[a-z0-9]$'
SECRET_KEY_PATTERN = r'^[A-Z_][A-Z0-9_]*$'
SQL_IDENTIFIER_PATTERN = r'^[A-Za-z_][A-Za-z0-9_]*$'
DEPLOYMENT_ID_PATTERN = r'^[A-Za-z0-9][A-Za-z0-9._\-]*$'


def validate_resource_name(name: str, kind: str = "resource", max_length: int = 63) -> str:
    """
    Validate a provider resource name (worker, Pages project, bucket, database).

    Args:
        name: Resource name to validate
        kind: Resource kind, used in error messages
        max_length: Maximum allowed length

    Returns:
        Validated resource name

    Raises:
        ValidationError: If the name is empty, too long or not lowercase-dashed
    """
    if not name or not re.match(RESOURCE_NAME_PATTERN, name):
        raise ValidationError(
            f"Invalid {kind} name: {name!r}",
            context={"kind": kind, "name": name, "pattern": RESOURCE_NAME_PATTERN}
        )

    if len(name) > max_length:
        raise ValidationError(
            f"{kind.capitalize()} name too long (max {max_length} characters)",
            context={"kind": kind, "name": name, "length": len(name)}
        )

    return name


def validate_secret_key(key: str) -> str:
    """
    Validate a worker secret name (UPPER_SNAKE_CASE).

    Raises:
        ValidationError: If the key is not a valid secret name
    """
    if not re.match(SECRET_KEY_PATTERN, key):
        raise ValidationError(
            f"Invalid secret name: {key}",
            context={"key": key, "pattern": SECRET_KEY_PATTERN}
        )
    return key


def validate_secrets(secrets: Dict[str, str], required: Iterable[str] = ()) -> Dict[str, str]:
    """
    Validate secret names and check required secrets are present and non-empty.

    Args:
        secrets: Secret name -> value
        required: Names that must be present

    Returns:
        Secrets with values coerced to str

    Raises:
        ValidationError: On an invalid name or missing required secrets
    """
    for key in secrets:
        validate_secret_key(key)

    missing: List[str] = [key for key in required if not str(secrets.get(key, "")).strip()]
    if missing:
        raise ValidationError(
            f"Missing required secrets: {', '.join(missing)}",
            context={"missing": missing}
        )

    return {key: str(value) for key, value in secrets.items()}


def validate_sql_identifier(identifier: str) -> str:
    """
    Validate a table or column name before it is interpolated into SQL.

    Raises:
        ValidationError: If the identifier is not a plain SQL identifier
    """
    if not re.match(SQL_IDENTIFIER_PATTERN, identifier):
        raise ValidationError(
            f"Invalid SQL identifier: {identifier}",
            context={"identifier": identifier}
        )
    return identifier


def validate_deployment_id(deployment_id: str) -> str:
    """
    Validate deployment ID format.

    The ID is used as a history file name, so path separators and leading
    dots are rejected.

    Raises:
        ValidationError: If deployment ID is invalid
    """
    if not re.match(DEPLOYMENT_ID_PATTERN, deployment_id or "") or '..' in deployment_id:
        raise ValidationError(
            f"Invalid deployment ID format: {deployment_id}",
            context={"deployment_id": deployment_id, "pattern": DEPLOYMENT_ID_PATTERN}
        )

    return deployment_id
