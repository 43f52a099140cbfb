from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict


@dataclass
class Energy:
    """Named energy terms of a deformation state.

    Only the "Total" term is produced today; callers should read values by
    name so per-term breakdowns can be added without changing the shape.
    """

    terms: Dict[str, float] = field(default_factory=dict)

    def add_energy_type(self, name: str, value: float) -> None:
        self.terms[name] = float(value)

    def __getitem__(self, name: str) -> float:
        return self.terms[name]

    def __contains__(self, name: object) -> bool:
        return name in self.terms

    def as_dict(self) -> Dict[str, float]:
        return dict(self.terms)

    @property
    def total(self) -> float:
        return self.terms["Total"]
