"""Row rendering for the device entity list."""
import logging
from types import MappingProxyType
from typing import List, Mapping, Optional, Sequence, Set

from pydantic import BaseModel

from hass_companion.models import ChangeRequest, Entity

logger = logging.getLogger(__name__)

# Action that flips an entity out of its displayed state
NEXT_ACTIONS: Mapping[str, str] = MappingProxyType({
    "on": "turn_off",
    "off": "turn_on",
    "open": "close_cover",
    "opening": "close_cover",
    "closing": "open_cover",
    "closed": "open_cover",
})

# Executables have no state to flip; the gateway substitutes their own action
DEFAULT_ACTION = "turn_on"


class Row(BaseModel):
    """One visible tile of the entity list."""
    index: int
    entity_id: str
    name: str
    state: str
    category: Optional[str] = None
    revealed: bool = False


def render_rows(entities: Sequence[Entity], revealed: Optional[Set[str]] = None) -> List[Row]:
    """
    Build the visible rows for an ordered entity list

    The category label is only set on the first row of each category; later
    rows of the same category leave it empty, whatever order the list is in.
    """
    revealed = revealed or set()
    seen: List[str] = []
    rows = []
    for index, entity in enumerate(entities):
        category = None
        if entity.domain not in seen:
            seen.append(entity.domain)
            category = entity.domain
        rows.append(Row(
            index=index,
            entity_id=entity.id,
            name=entity.name,
            state=entity.state,
            category=category,
            revealed=entity.id in revealed,
        ))
    return rows


def next_action(entity: Entity) -> str:
    """Action to request when the user activates this entity"""
    if entity.executable:
        return DEFAULT_ACTION
    return NEXT_ACTIONS.get(entity.state, DEFAULT_ACTION)


class EntityListRenderer:
    """Keeps the rendered rows and the per-row reveal state."""

    def __init__(self):
        self.rows: List[Row] = []
        self._revealed: Set[str] = set()

    def render(self, entities: Sequence[Entity]) -> List[Row]:
        self.rows = render_rows(entities, self._revealed)
        return self.rows

    def tap(self, index: int) -> Optional[Row]:
        """Reveal the details of a tapped row; no data changes"""
        if not 0 <= index < len(self.rows):
            return None
        row = self.rows[index]
        self._revealed.add(row.entity_id)
        row.revealed = True
        logger.debug(f"Revealed row {index} ({row.entity_id})")
        return row

    def reset(self) -> None:
        self.rows = []
        self._revealed.clear()

    def change_request(self, entity: Entity) -> ChangeRequest:
        return ChangeRequest(id=entity.id, action=next_action(entity))

    def format(self) -> str:
        """Plain text listing, one line per row"""
        lines = []
        for row in self.rows:
            if row.category:
                lines.append(f"[{row.category}]")
            lines.append(f"  {row.name}: {row.state}")
        return "\n".join(lines)
