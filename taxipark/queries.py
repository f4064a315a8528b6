import logging
from collections import Counter
from typing import Optional, Set

import numpy as np
import pandas as pd

import taxipark.ledger_contract as lc
from taxipark.models import Driver, DurationPeriod, Passenger, TaxiPark

logger = logging.getLogger(__name__)


def find_fake_drivers(park: TaxiPark) -> Set[Driver]:
    """Drivers on the roster who performed no trips."""
    active_drivers = {trip.driver for trip in park.trips}
    return set(park.all_drivers - active_drivers)


def find_faithful_passengers(park: TaxiPark, min_trips: int) -> Set[Passenger]:
    """Passengers who completed at least `min_trips` trips."""
    if min_trips < 0:
        raise ValueError(f"min_trips must be non-negative, got {min_trips}")

    trip_counts = Counter(p for trip in park.trips for p in trip.passengers)
    return {p for p in park.all_passengers if trip_counts[p] >= min_trips}


def find_frequent_passengers(park: TaxiPark, driver: Driver) -> Set[Passenger]:
    """Passengers taken by `driver` more than once."""
    rides = Counter(
        p for trip in park.trips if trip.driver == driver for p in trip.passengers
    )
    return {p for p in park.all_passengers if rides[p] > 1}


def find_smart_passengers(park: TaxiPark) -> Set[Passenger]:
    """Passengers who had a discount for the majority of their trips."""
    discounted = Counter()
    full_price = Counter()
    for trip in park.trips:
        tally = discounted if trip.has_discount else full_price
        tally.update(trip.passengers)

    return {p for p in park.all_passengers if discounted[p] > full_price[p]}


def find_most_frequent_trip_duration_period(park: TaxiPark) -> Optional[DurationPeriod]:
    """
    Most frequent trip duration among the periods 0..9, 10..19, 20..29, ...

    Returns None when there are no trips. When several periods are equally
    frequent, the one covering the shortest durations wins.
    """
    if not park.trips:
        return None

    width = lc.DURATION_PERIOD_WIDTH
    period_counts = Counter(trip.duration // width for trip in park.trips)
    index = min(period_counts, key=lambda k: (-period_counts[k], k))

    return DurationPeriod(index * width, index * width + width - 1)


def check_pareto_principle(park: TaxiPark) -> bool:
    """
    Check whether 20% of the drivers bring in 80% of the revenue.

    Drivers without trips bring in nothing, but they still count
    towards the size of the driver pool.
    """
    if not park.trips:
        return False

    costs = pd.Series(
        [trip.cost for trip in park.trips],
        index=[trip.driver.name for trip in park.trips],
        dtype="float64",
    )
    revenue_by_driver = (
        costs.groupby(level=0, sort=False).sum().sort_values(ascending=False)
    )
    accumulated = revenue_by_driver.cumsum()
    total_cost = accumulated.iloc[-1]

    # Count drivers until the running total reaches the top share,
    # including the driver that crosses it. Totals within rounding
    # error of the share have reached it.
    top_share = total_cost * lc.PARETO_REVENUE_SHARE
    reached = np.isclose(accumulated, top_share, rtol=lc.PARETO_REL_TOLERANCE, atol=0.0)
    below = (accumulated < top_share) & ~reached
    top_drivers = min(int(below.sum()) + 1, len(accumulated))

    allowed = len(park.all_drivers) * lc.PARETO_DRIVER_SHARE
    logger.debug(
        f"Pareto check: {top_drivers} driver(s) earn {lc.PARETO_REVENUE_SHARE:.0%} "
        f"of {total_cost:.2f}, allowed {allowed:.1f}"
    )

    return top_drivers <= allowed
