"""Local store: the single persisted JSON document.

The file holds the dataset and the per-install sync metadata side by side::

    {"dataset": {...}, "syncMetadata": {...}}

Key design choices:

* **Atomic writes** -- every write goes to a temp file in the same
  directory, then ``os.replace()`` swaps it in, so readers never see
  partial data.
* **Whole-document** -- ``get``/``set`` always read and write the full
  dataset; there is no partial update path.
* **First run** -- when no dataset exists yet, an empty one is created with
  the device id from metadata (generated and persisted if absent).
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .models import Dataset, DeviceInfo, SyncMetadata

logger = logging.getLogger(__name__)


class LocalStore:
    """Load and save the dataset and sync metadata.

    Args:
        path: Location of the JSON document.  Parent directories are
            created on first write.

    Attributes:
        lock: Re-entrant lock held around every read and write.  Callers
            doing read-modify-write sequences hold it too.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self.lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Dataset
    # ------------------------------------------------------------------

    def get(self) -> Dataset:
        """Return the stored dataset, creating an empty one on first run."""
        with self.lock:
            raw = self._read()
            document = raw.get("dataset")
            if document is not None:
                try:
                    return Dataset.model_validate(document)
                except ValidationError as e:
                    # Corrupt local data is never silently replaced.
                    raise ValueError(
                        f"Local dataset in {self._path} is invalid: {e}"
                    ) from e

            metadata = self._metadata_from(raw)
            device_id = metadata.device_id
            if device_id is None:
                from .identity import generate_device_id

                device_id = generate_device_id()
                metadata = metadata.model_copy(update={"device_id": device_id})
            dataset = Dataset.empty(DeviceInfo(id=device_id))
            logger.info("Initialised empty dataset at %s", self._path)
            self._write(dataset, metadata)
            return dataset

    def set(self, dataset: Dataset) -> None:
        """Replace the stored dataset, keeping metadata untouched."""
        with self.lock:
            self._write(dataset, self._metadata_from(self._read()))

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def get_metadata(self) -> SyncMetadata:
        with self.lock:
            return self._metadata_from(self._read())

    def set_metadata(self, metadata: SyncMetadata) -> None:
        with self.lock:
            raw = self._read()
            document = raw.get("dataset")
            dataset = (
                Dataset.model_validate(document) if document is not None else None
            )
            self._write(dataset, metadata)

    def update_metadata(self, **changes: Any) -> SyncMetadata:
        """Apply *changes* to the stored metadata and persist it.

        Returns:
            The updated metadata.
        """
        with self.lock:
            metadata = self.get_metadata().model_copy(update=changes)
            self.set_metadata(metadata)
            return metadata

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _metadata_from(raw: dict) -> SyncMetadata:
        try:
            return SyncMetadata.model_validate(raw.get("syncMetadata") or {})
        except ValidationError:
            logger.warning("Discarding unreadable sync metadata")
            return SyncMetadata()

    def _read(self) -> dict:
        if not self._path.exists():
            return {}
        with open(self._path, encoding="utf-8") as fh:
            try:
                raw = json.load(fh)
            except json.JSONDecodeError as e:
                raise ValueError(
                    f"Local store {self._path} is not valid JSON: {e}"
                ) from e
        if not isinstance(raw, dict):
            raise ValueError(f"Local store {self._path} must hold an object")
        return raw

    def _write(self, dataset: Dataset | None, metadata: SyncMetadata) -> None:
        payload: dict[str, Any] = {
            "syncMetadata": metadata.model_dump(mode="json", by_alias=True),
        }
        if dataset is not None:
            payload["dataset"] = dataset.to_document()

        directory = self._path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(directory), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2)
            os.replace(tmp_path, self._path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
