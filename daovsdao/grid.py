"""
Multi-realm triangular grid.

Each realm is a list of rows; row ``i`` holds exactly ``i + 1`` cells. A cell
holds an occupant identity or ``None``. Realms and rows are only ever
appended.

    realm 0          row 0:        [a]
                     row 1:      [b] [ ]
                     row 2:    [ ] [ ] [ ]
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

from daovsdao.core import ZERO_ADDRESS
from daovsdao.errors import (
    COLUMN_OUT_OF_BOUND,
    REALM_OUT_OF_BOUND,
    ROW_OUT_OF_BOUND,
    BoundsError,
    StateError,
)

Row = List[Optional[str]]


@dataclass(frozen=True)
class Coords:
    """Address of a cell."""
    realm: int
    row: int
    column: int

    def to_dict(self) -> Dict[str, int]:
        return {"realm": self.realm, "row": self.row, "column": self.column}

    @classmethod
    def parse(cls, value: Any) -> "Coords":
        """Accept a Coords, a mapping with realm/row/column, or a 3-sequence."""
        if isinstance(value, Coords):
            return value
        if isinstance(value, dict):
            return cls(int(value["realm"]), int(value["row"]), int(value["column"]))
        realm, row, column = value
        return cls(int(realm), int(row), int(column))

    def __str__(self) -> str:
        return f"({self.realm},{self.row},{self.column})"


class Grid:
    """Arena of rows per realm with explicit bounds checks before every read."""

    def __init__(self) -> None:
        self._realms: List[List[Row]] = []

    # ── growth ────────────────────────────────────────────────────────────

    def add_realm(self) -> int:
        """Append a realm holding a single empty cell. Returns its index."""
        self._realms.append([[None]])
        return len(self._realms) - 1

    def add_row(self, realm: int) -> int:
        """Append a row one cell longer than the last. Returns the new row index."""
        self._check_realm(realm)
        rows = self._realms[realm]
        rows.append([None] * (len(rows[-1]) + 1))
        return len(rows) - 1

    # ── bounds ────────────────────────────────────────────────────────────

    def _check_realm(self, realm: int) -> None:
        if not 0 <= realm < len(self._realms):
            raise BoundsError(REALM_OUT_OF_BOUND, realm=realm)

    def check_bounds(self, coords: Coords) -> None:
        """Raise for the first invalid axis, realm then row then column."""
        self._check_realm(coords.realm)
        rows = self._realms[coords.realm]
        if not 0 <= coords.row < len(rows):
            raise BoundsError(ROW_OUT_OF_BOUND, coords=coords)
        if not 0 <= coords.column < len(rows[coords.row]):
            raise BoundsError(COLUMN_OUT_OF_BOUND, coords=coords)

    # ── cells ─────────────────────────────────────────────────────────────

    def cell_at(self, coords: Coords) -> Optional[str]:
        self.check_bounds(coords)
        return self._realms[coords.realm][coords.row][coords.column]

    def occupy(self, coords: Coords, identity: str) -> None:
        self.check_bounds(coords)
        current = self._realms[coords.realm][coords.row][coords.column]
        if current is not None and current != identity:
            raise StateError("Cell already occupied", coords=coords, occupant=current)
        self._realms[coords.realm][coords.row][coords.column] = identity

    def put(self, coords: Coords, identity: Optional[str]) -> None:
        """Overwrite a cell unconditionally (used when two occupants trade places)."""
        self.check_bounds(coords)
        self._realms[coords.realm][coords.row][coords.column] = identity

    def clear(self, coords: Coords) -> None:
        self.put(coords, None)

    # ── queries ───────────────────────────────────────────────────────────

    @property
    def nr_realms(self) -> int:
        return len(self._realms)

    def nr_rows(self, realm: int) -> int:
        self._check_realm(realm)
        return len(self._realms[realm])

    def last_row(self, realm: int) -> Row:
        self._check_realm(realm)
        return list(self._realms[realm][-1])

    def is_row_full(self, realm: int, row: int) -> bool:
        self._check_realm(realm)
        return all(cell is not None for cell in self._realms[realm][row])

    def is_last_row(self, realm: int, row: int) -> bool:
        return row == self.nr_rows(realm) - 1

    def cells(self) -> Iterator[tuple]:
        """Yield (Coords, occupant) for every cell."""
        for r, rows in enumerate(self._realms):
            for i, row in enumerate(rows):
                for c, occupant in enumerate(row):
                    yield Coords(r, i, c), occupant

    def lands(self) -> List[List[List[str]]]:
        """Read model: realms → rows → cells with ZERO_ADDRESS for empty."""
        return [
            [[cell if cell is not None else ZERO_ADDRESS for cell in row] for row in rows]
            for rows in self._realms
        ]

    def check_shape(self) -> bool:
        return all(
            len(row) == i + 1 for rows in self._realms for i, row in enumerate(rows)
        )
