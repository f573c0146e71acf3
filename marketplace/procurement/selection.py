from __future__ import annotations

from typing import Dict, List, Mapping


SESSION_KEY = "selection"


class SelectionSet:
    """Items a client picked from the catalog plus the quantity of each.

    Ids and quantities change together: an id is in ``item_ids`` exactly when
    it has a quantity.
    """

    def __init__(self, quantities: Mapping[int, int] | None = None) -> None:
        self._quantities: Dict[int, int] = {}
        for item_id, quantity in (quantities or {}).items():
            self.set_quantity(int(item_id), int(quantity))

    @property
    def item_ids(self) -> List[int]:
        return list(self._quantities)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._quantities

    def __len__(self) -> int:
        return len(self._quantities)

    def quantity(self, item_id: int) -> int | None:
        return self._quantities.get(item_id)

    def toggle(self, item_id: int) -> bool:
        """Add with quantity 1 or drop the item; returns whether it is now selected."""
        if item_id in self._quantities:
            del self._quantities[item_id]
            return False
        self._quantities[item_id] = 1
        return True

    def set_quantity(self, item_id: int, quantity: int) -> None:
        if quantity <= 0:
            raise ValueError("quantity must be greater than zero")
        self._quantities[item_id] = quantity

    def remove(self, item_id: int) -> None:
        self._quantities.pop(item_id, None)

    def clear(self) -> None:
        self._quantities.clear()

    def to_lines(self) -> List[Dict[str, int]]:
        return [{"item_id": item_id, "quantity": quantity} for item_id, quantity in self._quantities.items()]

    @classmethod
    def from_session(cls, session) -> "SelectionSet":
        raw = session.get(SESSION_KEY) or {}
        quantities: Dict[int, int] = {}
        if isinstance(raw, dict):
            for key, value in raw.items():
                try:
                    item_id, quantity = int(key), int(value)
                except (TypeError, ValueError):
                    continue
                if quantity > 0:
                    quantities[item_id] = quantity
        return cls(quantities)

    def to_session(self, session) -> None:
        # JSON session cookies need string keys.
        session[SESSION_KEY] = {str(item_id): quantity for item_id, quantity in self._quantities.items()}
