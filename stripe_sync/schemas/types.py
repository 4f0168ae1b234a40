from typing import List, Tuple
from dataclasses import dataclass, field


@dataclass(frozen=True)
class EntitySchema:
    """Storable columns of a Stripe entity, grouped by column type.

    ``text`` columns hold strings and bare IDs, ``json`` columns hold nested
    objects, ``array`` columns hold lists serialized to JSON text.
    ``last_synced_at`` is implicit and never listed here.
    """
    text: Tuple[str, ...] = ()
    integer: Tuple[str, ...] = ()
    boolean: Tuple[str, ...] = ()
    number: Tuple[str, ...] = ()
    json: Tuple[str, ...] = ()
    array: Tuple[str, ...] = ()
    deleted_properties: Tuple[str, ...] = field(default=())

    @property
    def properties(self) -> List[str]:
        return [
            *self.text,
            *self.integer,
            *self.boolean,
            *self.number,
            *self.json,
            *self.array,
        ]
