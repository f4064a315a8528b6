import logging
import os
from datetime import datetime
from typing import Iterable, List, Optional

import pandas as pd

import taxipark.ledger_contract as lc
from taxipark.models import Driver, Passenger, TaxiPark, Trip

logger = logging.getLogger(__name__)

NUMERIC_COLUMNS = [lc.COST_COLUMN, lc.DISTANCE_COLUMN, lc.DISCOUNT_COLUMN, "duration"]


class LedgerIntegrityError(ValueError):
    """Trip table breaks the ledger contract; no ledger was built."""

    def __init__(self, message: str, stats: dict, violations: pd.DataFrame):
        super().__init__(message)
        self.stats = stats
        self.violations = violations


def read_table(path: str) -> pd.DataFrame:
    suffix = os.path.splitext(path)[1].lower()
    if suffix == ".parquet":
        return pd.read_parquet(path)
    if suffix == ".csv":
        # Names stay text ("007" is not 7); numbers are coerced later.
        return pd.read_csv(path, dtype=str)
    raise ValueError(f"Unsupported table format '{suffix}' for {path}")


def _clean_name(value):
    if value is None or (pd.api.types.is_scalar(value) and pd.isna(value)):
        return None
    # blank names count as missing
    return str(value).strip() or None


def _split_passengers(cell) -> List[str]:
    if isinstance(cell, str):
        names = cell.split(lc.PASSENGER_SEPARATOR)
    elif cell is None or (pd.api.types.is_scalar(cell) and pd.isna(cell)):
        return []
    else:
        # list-like cells from parquet
        names = cell
    return [str(name).strip() for name in names if str(name).strip()]


def prepare_trips(df: pd.DataFrame) -> pd.DataFrame:
    """Check the trip schema and normalize column types (no rows are removed)."""
    missing_cols = [c for c in lc.REQUIRED_COLUMNS if c not in df.columns]
    if lc.COST_COLUMN not in df.columns and lc.DISTANCE_COLUMN not in df.columns:
        missing_cols.append(f"{lc.COST_COLUMN} (or {lc.DISTANCE_COLUMN})")
    if missing_cols:
        raise ValueError(f"Schema Violation: Missing columns {missing_cols}")

    df = df.copy()
    if lc.DISCOUNT_COLUMN not in df.columns:
        df[lc.DISCOUNT_COLUMN] = float("nan")

    # Type enforcement
    for col in NUMERIC_COLUMNS:
        if col not in df.columns:
            continue
        raw = df[col]
        df[col] = pd.to_numeric(raw, errors="coerce")
        unparsable = raw.notna() & df[col].isna()
        if unparsable.any():
            raise ValueError(
                f"Type Violation: {int(unparsable.sum())} non-numeric value(s) in '{col}'"
            )

    df["driver"] = df["driver"].map(_clean_name)
    df["passengers"] = df["passengers"].map(_split_passengers)

    if lc.COST_COLUMN not in df.columns:
        logger.info("No cost column, deriving fares from duration and distance.")
        df[lc.COST_COLUMN] = (1 - df[lc.DISCOUNT_COLUMN].fillna(0.0)) * (
            df["duration"] + df[lc.DISTANCE_COLUMN]
        )

    return df


def build_ledger(
    trips: pd.DataFrame,
    drivers: Optional[Iterable[str]] = None,
    passengers: Optional[Iterable[str]] = None,
) -> TaxiPark:
    """
    Validating constructor for TaxiPark.

    Rosters default to the drivers/passengers seen in the trips. Any trip
    breaking the contract fails the whole build: queries answer for every
    trip, so nothing is dropped.
    """
    df = prepare_trips(trips)
    total = len(df)

    driver_roster = None if drivers is None else {str(d).strip() for d in drivers}
    passenger_roster = None if passengers is None else {str(p).strip() for p in passengers}

    # 1) Rule masks (observability)
    mask_complete = df[["driver", "duration", lc.COST_COLUMN]].notna().all(axis=1)
    mask_duration = (df["duration"] >= lc.DURATION_MIN) & (df["duration"] % 1 == 0)
    mask_cost = df[lc.COST_COLUMN] >= lc.COST_MIN
    mask_discount = df[lc.DISCOUNT_COLUMN].isna() | df[lc.DISCOUNT_COLUMN].between(
        lc.DISCOUNT_MIN, lc.DISCOUNT_MAX
    )
    mask_passengers = df["passengers"].map(len) > 0

    mask_distance = pd.Series(True, index=df.index)
    if lc.DISTANCE_COLUMN in df.columns:
        mask_distance = df[lc.DISTANCE_COLUMN].isna() | (
            df[lc.DISTANCE_COLUMN] >= lc.DISTANCE_MIN
        )

    mask_driver_roster = pd.Series(True, index=df.index)
    if driver_roster is not None:
        mask_driver_roster = df["driver"].map(lambda d: str(d) in driver_roster)

    mask_passenger_roster = pd.Series(True, index=df.index)
    if passenger_roster is not None:
        mask_passenger_roster = df["passengers"].map(
            lambda names: set(names) <= passenger_roster
        )

    valid_mask = (
        mask_complete
        & mask_duration
        & mask_cost
        & mask_discount
        & mask_passengers
        & mask_distance
        & mask_driver_roster
        & mask_passenger_roster
    ).astype(bool)

    # 2) Stats
    invalid_rows = int((~valid_mask).sum())
    stats = {
        "trip_rows": total,
        "invalid_rows": invalid_rows,
        "violation_missing_value": int((~mask_complete).sum()),
        "violation_duration": int((~mask_duration).sum()),
        "violation_cost": int((~mask_cost).sum()),
        "violation_discount": int((~mask_discount).sum()),
        "violation_distance": int((~mask_distance).sum()),
        "violation_no_passengers": int((~mask_passengers).sum()),
        "violation_unknown_driver": int((~mask_driver_roster).sum()),
        "violation_unknown_passenger": int((~mask_passenger_roster).sum()),
    }
    logger.info(f"Trip table stats: {stats}")

    # Guard
    if invalid_rows > 0:
        broken = {k: v for k, v in stats.items() if k.startswith("violation_") and v}
        error_msg = (
            f"Ledger Integrity Breach! {invalid_rows} of {total} trip(s) "
            f"violate the ledger contract: {broken}"
        )
        logger.error(error_msg)
        raise LedgerIntegrityError(error_msg, stats, df[~valid_mask])

    # 3) Build the snapshot
    trip_records = tuple(
        Trip(
            driver=Driver(str(row.driver)),
            passengers=frozenset(Passenger(name) for name in row.passengers),
            duration=int(row.duration),
            cost=float(row.cost),
            discount=None if pd.isna(row.discount) else float(row.discount),
        )
        for row in df.itertuples(index=False)
    )

    if driver_roster is None:
        all_drivers = frozenset(trip.driver for trip in trip_records)
    else:
        all_drivers = frozenset(Driver(name) for name in driver_roster)

    if passenger_roster is None:
        all_passengers = frozenset(p for trip in trip_records for p in trip.passengers)
    else:
        all_passengers = frozenset(Passenger(name) for name in passenger_roster)

    logger.info(
        f"Ledger built: {len(all_drivers)} drivers, "
        f"{len(all_passengers)} passengers, {len(trip_records)} trips"
    )
    return TaxiPark(all_drivers=all_drivers, all_passengers=all_passengers, trips=trip_records)


class LedgerLoader:
    """
    Fail-fast loader:
    - Reads the trip table and optional roster files (CSV or Parquet)
    - Validates the schema and the ledger contract
    - Writes a sample of offending trips to a writable artifact dir
    - Attaches stats on df.attrs for main.py to log
    """

    def __init__(
        self,
        trips_path: str,
        drivers_path: str | None = None,
        passengers_path: str | None = None,
        artifact_dir: str | None = None,
    ):
        self.trips_path = trips_path
        self.drivers_path = drivers_path
        self.passengers_path = passengers_path
        self.artifact_dir = artifact_dir or os.environ.get(
            "LOCAL_ARTIFACT_DIR", "/tmp/taxipark_artifacts"
        )
        self._rosters = {}

    def load_trips(self) -> pd.DataFrame:
        logger.info(f"Loading trips from {self.trips_path}...")

        try:
            df = read_table(self.trips_path)
        except Exception as e:
            logger.error(f"Failed to read trip table: {e}")
            raise

        df = prepare_trips(df)
        df.attrs["stats"] = {"trip_rows": len(df)}
        logger.info(f"Trip row count: {len(df)}")
        return df

    def load_roster(self, path: str | None, column: str) -> List[str] | None:
        if path is None:
            return None
        if (path, column) in self._rosters:
            return list(self._rosters[(path, column)])

        roster = read_table(path)
        if column not in roster.columns:
            raise ValueError(f"Schema Violation: Roster {path} has no '{column}' column")

        names = roster[column].dropna().astype(str).str.strip()
        logger.info(f"Loaded {len(names)} {column} names from {path}")
        self._rosters[(path, column)] = names.tolist()
        return names.tolist()

    def load_ledger(self, trips: pd.DataFrame | None = None) -> TaxiPark:
        if trips is None:
            trips = self.load_trips()
        drivers = self.load_roster(self.drivers_path, lc.DRIVER_ROSTER_COLUMN)
        passengers = self.load_roster(self.passengers_path, lc.PASSENGER_ROSTER_COLUMN)

        try:
            park = build_ledger(trips, drivers=drivers, passengers=passengers)
        except LedgerIntegrityError as e:
            trips.attrs["stats"] = e.stats
            trips.attrs["violations_sample_path"] = self._save_violations(e.violations)
            raise

        trips.attrs["stats"] = {
            "trip_rows": len(park.trips),
            "drivers": len(park.all_drivers),
            "passengers": len(park.all_passengers),
        }
        return park

    def _save_violations(self, violations: pd.DataFrame) -> str | None:
        try:
            os.makedirs(self.artifact_dir, exist_ok=True)
            ts = datetime.now().strftime("%Y%m%d_%H%M%S")
            path = os.path.join(self.artifact_dir, f"ledger_violations_sample_{ts}.csv")
            violations.head(100).to_csv(path, index=False)
            logger.info(f"Saved offending trips sample to: {path}")
            return path
        except OSError as e:
            # The integrity error is what matters; a missing sample is not fatal.
            logger.warning(f"Could not write violations sample CSV: {e}")
            return None
