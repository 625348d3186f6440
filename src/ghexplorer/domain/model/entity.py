"""Base building blocks: internal identity and the enrichment state machine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar
from uuid import UUID, uuid4

from ghexplorer.domain.model.enums import EnrichmentState, EntityKind


def new_id() -> UUID:
    return uuid4()


@dataclass(eq=False, kw_only=True)
class Entity:
    """Internal identity exists immediately in the domain."""

    id: UUID = field(default_factory=new_id)


@dataclass(eq=False, kw_only=True)
class EnrichableEntity(Entity):
    """Entity keyed by an external GitHub identifier that can be enriched once."""

    ENTITY_KIND: ClassVar[EntityKind]

    # mapped to the ``enrichment_state`` column; only ``mark_enriched`` writes it
    _enrichment: EnrichmentState = field(default=EnrichmentState.PENDING, init=False)

    @property
    def enrichment(self) -> EnrichmentState:
        return self._enrichment

    @property
    def is_enriched(self) -> bool:
        return self._enrichment is EnrichmentState.ENRICHED

    def mark_enriched(self) -> None:
        self._enrichment = self._enrichment.advance(EnrichmentState.ENRICHED)

    def apply_fields(self, values: dict[str, object], *, enrichment: EnrichmentState) -> None:
        """Merge ``values`` into this entity without destroying enriched data.

        ``None`` never overwrites anything. When this entity is already enriched and
        the incoming values are not, only fields that are still empty are filled.
        """

        fill_only = self.is_enriched and enrichment is EnrichmentState.PENDING
        for name, value in values.items():
            if value is None:
                continue
            if fill_only and getattr(self, name) is not None:
                continue
            setattr(self, name, list(value) if isinstance(value, tuple) else value)
        if enrichment is EnrichmentState.ENRICHED:
            self.mark_enriched()
