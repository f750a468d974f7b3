"""
Deployment history persistence.

One JSON file per deployment ID holding its most recent runs, newest first,
capped at a fixed length. Writes are atomic (temp file + rename).
"""
import json  # Serialización y deserialización de JSON
import os  # Operaciones del sistema operativo (rutas, archivos)
import tempfile  # Creación de archivos temporales
from pathlib import Path  # Manejo moderno de rutas de archivos
from typing import Any, Dict, List, Optional  # Type hints para tipos opcionales y colecciones

from ..models.deployment import DeploymentHistoryEntry  # Modelo Pydantic del historial
from ..exceptions import HistoryStoreError  # Excepción personalizada para errores del historial
from .logging import get_logger  # Logger estructurado
from .validation import validate_deployment_id

logger = get_logger(__name__)


class DeploymentHistoryStore:
    """Per-deployment run history with atomic writes."""

    def __init__(self, history_dir: Path, limit: int = 50):
        """
        Initialize history store.

        Args:
            history_dir: Directory for the per-deployment JSON files
            limit: Maximum entries kept per deployment (oldest evicted)
        """
        self.history_dir = Path(history_dir)
        self.history_dir.mkdir(parents=True, exist_ok=True)
        self.limit = limit

    def _path(self, deployment_id: str) -> Path:
        return self.history_dir / f"{validate_deployment_id(deployment_id)}.json"

    def _atomic_write_json(self, filepath: Path, data: Dict[str, Any]) -> None:
        """
        Write JSON file atomically using temp file + rename.

        Args:
            filepath: Target file path
            data: Data to serialize as JSON
        """
        fd, tmp_path = tempfile.mkstemp(
            dir=str(filepath.parent),
            prefix=".tmp_",
            suffix=".json"
        )

        try:
            with os.fdopen(fd, 'w') as f:
                json.dump(data, f, indent=2, default=str)
                f.flush()
                os.fsync(f.fileno())

            os.replace(tmp_path, str(filepath))

        except OSError as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise HistoryStoreError(
                f"Failed to write {filepath}: {e}",
                context={"filepath": str(filepath)}
            )

    def _read_json(self, filepath: Path) -> Dict[str, Any]:
        try:
            with open(filepath, 'r') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise HistoryStoreError(
                f"Failed to read {filepath}: {e}",
                context={"filepath": str(filepath)}
            )

    def append(self, deployment_id: str, entry: DeploymentHistoryEntry) -> List[DeploymentHistoryEntry]:
        """
        Prepend a run to the deployment's history and evict beyond the limit.

        Returns:
            The stored history, newest first
        """
        path = self._path(deployment_id)
        history = self.list(deployment_id)
        history.insert(0, entry)
        history = history[:self.limit]

        self._atomic_write_json(path, {
            "deploymentId": deployment_id,
            "history": [item.model_dump(mode='json', by_alias=True, exclude_none=True) for item in history],
        })

        logger.info(
            "deployment_history_saved",
            deployment_id=deployment_id,
            status=entry.status,
            entries=len(history)
        )
        return history

    def list(self, deployment_id: str, limit: Optional[int] = None) -> List[DeploymentHistoryEntry]:
        """
        History for one deployment, newest first.

        Args:
            deployment_id: Deployment ID
            limit: Optional maximum number of entries to return

        Returns:
            History entries (empty if the deployment has never run)
        """
        path = self._path(deployment_id)
        if not path.exists():
            return []

        data = self._read_json(path)
        entries = [DeploymentHistoryEntry.model_validate(item) for item in data.get("history", [])]
        return entries[:limit] if limit is not None else entries

    def latest(self, deployment_id: str) -> Optional[DeploymentHistoryEntry]:
        """Most recent run, or None."""
        entries = self.list(deployment_id, limit=1)
        return entries[0] if entries else None

    def deployment_ids(self) -> List[str]:
        """IDs of all deployments with stored history."""
        return sorted(
            path.stem for path in self.history_dir.glob("*.json")
            if not path.name.startswith(".")
        )
