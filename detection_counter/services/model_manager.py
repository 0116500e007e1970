"""Model management utilities for Teachable Machine style model exports."""

import io
import zipfile
from pathlib import Path
from typing import Optional, Dict, Any, List

import requests

from ..config.defaults import MODEL_SETTINGS
from .error_handler import ClassifierLoadError
from ..logging_config import get_logger

logger = get_logger("model_manager")


def parse_labels(text: str) -> List[str]:
    """Parse a labels file.

    Teachable Machine writes one ``"<index> <name>"`` line per class; plain
    one-name-per-line files are accepted too.
    """
    labels = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        index, sep, name = line.partition(" ")
        if sep and index.isdigit():
            labels.append(name.strip())
        else:
            labels.append(line)
    return labels


class ModelManager:
    """Locates, downloads and describes classifier model files."""

    def __init__(self, models_dir: str = "models",
                 timeout: float = MODEL_SETTINGS["download_timeout_seconds"]):
        self.models_dir = Path(models_dir)
        self.timeout = timeout
        logger.info(f"Model manager initialized with models directory: {self.models_dir}")

    def load_labels(self, labels_path: str) -> List[str]:
        """Read labels from a local file."""
        path = Path(labels_path)
        if not path.exists():
            raise ClassifierLoadError(f"Labels file not found: {labels_path}")

        labels = parse_labels(path.read_text(encoding="utf-8"))
        if not labels:
            raise ClassifierLoadError(f"Labels file is empty: {labels_path}")

        logger.info(f"Loaded {len(labels)} labels from {labels_path}")
        return labels

    def fetch_metadata(self, model_url: str) -> Dict[str, Any]:
        """Fetch metadata.json from a hosted model base URL."""
        url = model_url if model_url.endswith("/") else model_url + "/"
        url += MODEL_SETTINGS["metadata_file"]

        try:
            response = requests.get(url, timeout=self.timeout)
            response.raise_for_status()
            metadata = response.json()
        except (requests.RequestException, ValueError) as e:
            raise ClassifierLoadError(f"Failed to fetch model metadata from {url}: {e}") from e

        if not isinstance(metadata, dict) or not metadata.get("labels"):
            raise ClassifierLoadError(f"Model metadata at {url} has no labels")

        logger.info(f"Fetched metadata for {len(metadata['labels'])} classes from {url}")
        return metadata

    def download_model(self, archive_url: str, force_download: bool = False) -> Dict[str, str]:
        """Download a zipped TFLite export and extract the model and labels.

        Returns a dict with ``model_path`` and ``labels_path``.
        """
        self.models_dir.mkdir(parents=True, exist_ok=True)
        existing = self.find_local_model()
        if existing and not force_download:
            logger.info(f"Model already present at {existing['model_path']}")
            return existing

        logger.info(f"Downloading model from {archive_url}")
        try:
            response = requests.get(archive_url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise ClassifierLoadError(f"Failed to download model: {e}") from e

        try:
            archive = zipfile.ZipFile(io.BytesIO(response.content))
        except zipfile.BadZipFile as e:
            raise ClassifierLoadError(f"Downloaded model is not a zip archive: {e}") from e

        model_path = None
        labels_path = None
        with archive:
            for member in archive.namelist():
                name = Path(member).name
                if name.endswith(MODEL_SETTINGS["model_suffix"]) and model_path is None:
                    model_path = self.models_dir / name
                    model_path.write_bytes(archive.read(member))
                elif name == MODEL_SETTINGS["labels_file"]:
                    labels_path = self.models_dir / name
                    labels_path.write_bytes(archive.read(member))

        if model_path is None or labels_path is None:
            raise ClassifierLoadError("Archive must contain a .tflite model and labels.txt")

        logger.info(f"Successfully downloaded model to {model_path}")
        return {"model_path": str(model_path), "labels_path": str(labels_path)}

    def find_local_model(self) -> Optional[Dict[str, str]]:
        """Return paths of a model + labels pair already in the models directory."""
        labels_path = self.models_dir / MODEL_SETTINGS["labels_file"]
        if not labels_path.exists():
            return None

        models = sorted(self.models_dir.glob(f"*{MODEL_SETTINGS['model_suffix']}"))
        if not models:
            return None

        return {"model_path": str(models[0]), "labels_path": str(labels_path)}

    def resolve_labels(self, labels_path: str, model_url: str = "") -> List[str]:
        """Labels from the local file, falling back to hosted metadata."""
        if Path(labels_path).exists() or not model_url:
            return self.load_labels(labels_path)
        return list(self.fetch_metadata(model_url)["labels"])
