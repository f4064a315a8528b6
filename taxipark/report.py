import logging

from taxipark.models import Driver, TaxiPark
from taxipark import queries

logger = logging.getLogger(__name__)


def _names(entities) -> list:
    return sorted(str(e) for e in entities)


def build_report(park: TaxiPark, min_trips: int, driver: Driver) -> dict:
    """Run every query over `park` and return JSON-ready answers."""
    logger.info(f"Running queries (min_trips={min_trips}, driver={driver})...")

    period = queries.find_most_frequent_trip_duration_period(park)

    report = {
        "ledger": {
            "drivers": len(park.all_drivers),
            "passengers": len(park.all_passengers),
            "trips": len(park.trips),
        },
        "fake_drivers": _names(queries.find_fake_drivers(park)),
        "faithful_passengers": {
            "min_trips": min_trips,
            "passengers": _names(queries.find_faithful_passengers(park, min_trips)),
        },
        "frequent_passengers": {
            "driver": str(driver),
            "passengers": _names(queries.find_frequent_passengers(park, driver)),
        },
        "smart_passengers": _names(queries.find_smart_passengers(park)),
        "most_frequent_duration_period": None if period is None else [period.start, period.end],
        "pareto_principle_holds": queries.check_pareto_principle(park),
    }

    logger.info(
        f"Report ready: {len(report['fake_drivers'])} fake drivers, "
        f"{len(report['smart_passengers'])} smart passengers, "
        f"pareto={report['pareto_principle_holds']}"
    )
    return report
