import pytest
import pandas as pd
from taxipark.models import Driver, Passenger, TaxiPark, Trip


def drivers(*indices):
    return frozenset(Driver(f"D{i}") for i in indices)


def passengers(*indices):
    return frozenset(Passenger(f"P{i}") for i in indices)


def trip(driver, riders, duration=10, cost=10.0, discount=None):
    """Shorthand: trip(1, [1, 2]) is D1 taking P1 and P2."""
    return Trip(
        driver=Driver(f"D{driver}"),
        passengers=passengers(*riders),
        duration=duration,
        cost=cost,
        discount=discount,
    )


def park(driver_count, passenger_count, *trips):
    return TaxiPark(
        all_drivers=drivers(*range(driver_count)),
        all_passengers=passengers(*range(passenger_count)),
        trips=tuple(trips),
    )


@pytest.fixture
def sample_park():
    """Provides a small park mimicking a day of trips."""
    return park(
        4,
        6,
        trip(0, [0, 1], duration=12, cost=24.5),
        trip(0, [0], duration=15, cost=18.0, discount=0.1),
        trip(0, [0, 2], duration=8, cost=11.2, discount=0.2),
        trip(0, [1], duration=22, cost=30.0),
        trip(1, [3], duration=17, cost=21.5, discount=0.1),
        trip(1, [0, 3], duration=31, cost=42.0, discount=0.3),
        trip(2, [4], duration=14, cost=16.8),
    )


@pytest.fixture
def raw_trips():
    """Provides a raw trip table mimicking the CSV source."""
    data = {
        'driver': ['D0', 'D0', 'D1', 'D2'],
        'passengers': ['P0;P1', 'P0', 'P2', 'P0; P3'],
        'duration': ['12', '15', '31', '8'],
        'cost': ['24.5', '18.0', '42.0', '11.2'],
        'discount': [None, '0.1', '0.3', None],
    }
    return pd.DataFrame(data)
