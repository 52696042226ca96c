"""On-disk model storage.

Model files live directly under the models directory as <filename>.gguf.
In-flight downloads use a .part suffix and are never listed.
"""

import logging
from datetime import datetime
from pathlib import Path

from core.exceptions import ModelIOError, ModelNotFoundError
from core.interfaces import InstalledModel
from core.model_catalog import MODEL_EXTENSION, find_by_name, strip_extension

logger = logging.getLogger(__name__)

PART_SUFFIX = ".part"


class ModelStore:
    """Resolves, lists, and removes model files in the storage directory."""

    def __init__(self, models_dir: Path):
        self._models_dir = Path(models_dir)

    @property
    def models_dir(self) -> Path:
        return self._models_dir

    def ensure_directory(self) -> None:
        """Create the models directory with owner-only permissions."""
        try:
            self._models_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        except OSError as e:
            raise ModelIOError(f"Failed to create models directory {self._models_dir}: {e}") from e

    def filename_for(self, name: str) -> str:
        """Return the stored filename for a model name.

        Catalog models map to their catalog filename; anything else is
        treated as a bare file stem.
        """
        entry = find_by_name(name)
        if entry is not None:
            return entry.filename

        filename = name if name.endswith(MODEL_EXTENSION) else f"{name}{MODEL_EXTENSION}"
        if not name or Path(filename).name != filename:
            raise ModelNotFoundError(f"Invalid model name: {name!r}")
        return filename

    def path_for(self, name: str) -> Path:
        return self._models_dir / self.filename_for(name)

    def resolve_existing(self, name: str) -> Path:
        """Return the model file path, raising if it is not on disk."""
        path = self.path_for(name)
        if not path.is_file():
            raise ModelNotFoundError(f"Model {name!r} not found at {path}")
        return path

    def list_models(self, active_filename: str | None = None) -> list[InstalledModel]:
        """Scan the models directory. A missing directory yields []."""
        try:
            entries = sorted(self._models_dir.iterdir())
        except FileNotFoundError:
            return []
        except OSError as e:
            raise ModelIOError(f"Cannot read models directory {self._models_dir}: {e}") from e

        models: list[InstalledModel] = []
        for path in entries:
            if not path.name.endswith(MODEL_EXTENSION) or not path.is_file():
                continue
            try:
                stat = path.stat()
            except OSError:
                # Removed between listing and stat
                continue

            name = strip_extension(path.name)
            models.append(InstalledModel(
                name=name,
                filename=path.name,
                size=stat.st_size,
                modified_at=datetime.fromtimestamp(stat.st_mtime),
                digest=f"gguf-{name}",
                active=path.name == active_filename,
            ))

        return models

    def delete(self, name: str) -> Path:
        """Remove a model file from disk.

        Raises:
            ModelNotFoundError: No such file in the models directory
            ModelIOError: The file could not be removed
        """
        path = self.resolve_existing(name)
        try:
            path.unlink()
        except FileNotFoundError as e:
            raise ModelNotFoundError(f"Model {name!r} not found at {path}") from e
        except OSError as e:
            raise ModelIOError(f"Failed to delete {path}: {e}") from e

        logger.info("Deleted model file: %s", path.name)
        return path
