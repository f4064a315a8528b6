from dataclasses import dataclass, field
from typing import FrozenSet, NamedTuple, Optional, Tuple


@dataclass(frozen=True, order=True)
class Driver:
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True, order=True)
class Passenger:
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Trip:
    driver: Driver
    passengers: FrozenSet[Passenger]
    duration: int
    cost: float
    discount: Optional[float] = None

    @property
    def has_discount(self) -> bool:
        return self.discount is not None


class DurationPeriod(NamedTuple):
    """Inclusive range of trip durations in minutes."""

    start: int
    end: int

    def __contains__(self, duration) -> bool:
        return self.start <= duration <= self.end


@dataclass(frozen=True)
class TaxiPark:
    """
    Read-only snapshot of a taxi park:
    - every driver and passenger on the roster
    - the trips they made

    Roster membership of trip participants is checked by the loader
    (see ledger_loader.build_ledger), not here.
    """

    all_drivers: FrozenSet[Driver] = field(default_factory=frozenset)
    all_passengers: FrozenSet[Passenger] = field(default_factory=frozenset)
    trips: Tuple[Trip, ...] = ()
