"""Model registry: canonical ids, aliases and local/remote classification."""

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Literal

from loguru import logger

from kalito.config.schema import ModelEntry, default_model_entries

ModelKind = Literal["local", "remote"]


@dataclass(frozen=True)
class ModelSpec:
    """A registered model."""

    id: str
    name: str
    kind: ModelKind
    litellm_model: str
    api_base: str | None = None
    aliases: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_local(self) -> bool:
        return self.kind == "local"

    @classmethod
    def from_entry(cls, entry: ModelEntry) -> "ModelSpec":
        return cls(
            id=entry.id,
            name=entry.name or entry.id,
            kind=entry.kind,
            litellm_model=entry.litellm_model or entry.id,
            api_base=entry.api_base,
            aliases=tuple(entry.aliases),
        )


class ModelRegistry:
    """
    Looks up models by canonical id or alias.

    Aliases resolve to the same spec as the canonical id. Unknown ids are
    treated as remote.
    """

    def __init__(self, entries: Iterable[ModelEntry] | None = None):
        self._lookup: dict[str, ModelSpec] = {}
        for entry in default_model_entries() if entries is None else entries:
            self.register(ModelSpec.from_entry(entry))

    def register(self, spec: ModelSpec) -> None:
        """Register a spec under its id and aliases; later registrations win."""
        for key in (spec.id, *spec.aliases):
            if not key:
                continue
            if key in self._lookup and self._lookup[key].id != spec.id:
                logger.debug(f"Model key {key} re-pointed from {self._lookup[key].id} to {spec.id}")
            self._lookup[key] = spec

    def get(self, model_id: str | None) -> ModelSpec | None:
        """Get a spec by canonical id or alias."""
        if not model_id:
            return None
        return self._lookup.get(model_id.strip())

    def resolve_model_kind(self, model_id: str | None) -> ModelKind:
        """Classify a model as local or remote; unknown models are remote."""
        spec = self.get(model_id)
        return spec.kind if spec else "remote"

    def is_local(self, model_id: str | None) -> bool:
        return self.resolve_model_kind(model_id) == "local"

    def list_models(self) -> list[ModelSpec]:
        """List unique models sorted by kind, name, then id."""
        unique = {spec.id: spec for spec in self._lookup.values()}
        return sorted(unique.values(), key=lambda s: (s.kind, s.name, s.id))

    def __contains__(self, model_id: str) -> bool:
        return self.get(model_id) is not None

    def __len__(self) -> int:
        return len({spec.id for spec in self._lookup.values()})
