"""
Declared model registry.

Dapp management lives outside the engine; the engine only needs to
know which dapp owns a model so that a genesis event declaring that
model can be attributed to its tenant. The registry holds that
mapping and can be seeded from YAML:

```yaml
models:
  - model_id: "kjzl6hvfrbw6c..."
    name: "post"
    dapp_id: "7a1f0c7e-..."
    encryptable: ["text"]
```
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from uuid import UUID

import yaml

from .exceptions import ModelNotFoundError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class Model:
    """A model declared by a dapp."""

    model_id: str
    name: str
    dapp_id: UUID
    encryptable: list[str] = field(default_factory=list)
    version: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Model:
        """Deserialize from a registry entry."""
        try:
            dapp_id = data["dapp_id"]
            return cls(
                model_id=str(data["model_id"]),
                name=str(data.get("name", data["model_id"])),
                dapp_id=dapp_id if isinstance(dapp_id, UUID) else UUID(str(dapp_id)),
                encryptable=list(data.get("encryptable") or []),
                version=int(data.get("version", 0)),
            )
        except KeyError as e:
            raise ValidationError(str(e.args[0]), "missing in model entry") from e
        except ValueError as e:
            raise ValidationError("dapp_id", str(e), str(data.get("dapp_id"))) from e

    def to_dict(self) -> dict[str, Any]:
        return {
            "model_id": self.model_id,
            "name": self.name,
            "dapp_id": str(self.dapp_id),
            "encryptable": self.encryptable,
            "version": self.version,
        }


class ModelRegistry:
    """In-process lookup of declared models by id and by dapp."""

    def __init__(self, models: list[Model] | None = None) -> None:
        self._models: dict[str, Model] = {}
        for model in models or []:
            self.register_model(model)

    @classmethod
    def from_file(cls, path: str | Path) -> ModelRegistry:
        """Load models from the `models:` list of a YAML file."""
        try:
            content = Path(path).read_text(encoding="utf-8")
        except OSError as e:
            raise ValidationError("models_file", f"cannot read: {e}", str(path)) from e

        data = yaml.safe_load(content) or {}
        entries = data.get("models", []) if isinstance(data, dict) else []
        registry = cls([Model.from_dict(entry) for entry in entries])
        logger.info(f"Loaded {len(registry)} models from {path}")
        return registry

    def register_model(self, model: Model) -> None:
        """Declare a model (replacing any earlier declaration of the same id)."""
        self._models[model.model_id] = model

    def get_model(self, model_id: str) -> Model:
        """Look up a model by id.

        Raises:
            ModelNotFoundError: If the model is not declared
        """
        model = self._models.get(model_id)
        if model is None:
            raise ModelNotFoundError(model_id)
        return model

    def get_model_by_name(self, dapp_id: UUID, name: str) -> Model:
        """Latest version of the model called `name` in a dapp."""
        candidates = [m for m in self._models.values() if m.dapp_id == dapp_id and m.name == name]
        if not candidates:
            raise ModelNotFoundError(f"{dapp_id}/{name}")
        return max(candidates, key=lambda m: m.version)

    def get_models(self, dapp_id: UUID) -> list[Model]:
        """All models declared by a dapp, ordered by name then version."""
        return sorted(
            (m for m in self._models.values() if m.dapp_id == dapp_id),
            key=lambda m: (m.name, m.version),
        )

    def dapp_for_model(self, model_id: str) -> UUID:
        """The dapp that owns `model_id`."""
        return self.get_model(model_id).dapp_id

    def __len__(self) -> int:
        return len(self._models)

    def __contains__(self, model_id: str) -> bool:
        return model_id in self._models
