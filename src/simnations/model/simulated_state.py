from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from simnations.utils.misc import normalize_datetime

# Attributes written back by a pass; everything else in the document is untouched.
ECONOMIC_FIELDS = (
    "gdp",
    "gdp_growth_rate",
    "inflation_rate",
    "price_index",
    "unemployment_rate",
    "treasury",
)


@dataclass
class SimulatedState:
    """A country of the game as read from the state repository."""

    state_id: str
    key: Any
    name: str = ""
    attributes: Dict[str, Any] = field(default_factory=dict)
    last_economic_update: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "SimulatedState":
        economy = doc.get("economy")
        if not isinstance(economy, Mapping):
            # Malformed sub-document: recompute then fails this state alone.
            economy = {}
        try:
            last_update = normalize_datetime(doc.get("last_economic_update"))
        except (TypeError, ValueError):
            # Unreadable stamp: the next recompute treats the state as never updated.
            last_update = None
        return cls(
            state_id=str(doc.get("_id")),
            key=doc.get("_id"),
            name=doc.get("name", ""),
            attributes={k: economy[k] for k in ECONOMIC_FIELDS if k in economy},
            last_economic_update=last_update,
        )

    def to_update(self) -> Dict[str, Any]:
        """Return the ``$set`` payload persisting the economic attributes."""
        update: Dict[str, Any] = {f"economy.{k}": v for k, v in self.attributes.items() if k in ECONOMIC_FIELDS}
        update["last_economic_update"] = self.last_economic_update
        return update
