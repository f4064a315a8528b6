import os

import pandas as pd
import pytest
from taxipark.ledger_loader import (
    LedgerIntegrityError,
    LedgerLoader,
    build_ledger,
    prepare_trips,
)
from taxipark.models import Driver, Passenger
from taxipark.queries import find_fake_drivers


def test_build_ledger_from_raw_table(raw_trips):
    taxi_park = build_ledger(raw_trips)

    assert taxi_park.all_drivers == {Driver("D0"), Driver("D1"), Driver("D2")}
    assert taxi_park.all_passengers == {Passenger(f"P{i}") for i in range(4)}
    assert len(taxi_park.trips) == 4

    first, second = taxi_park.trips[0], taxi_park.trips[1]
    assert first.passengers == {Passenger("P0"), Passenger("P1")}
    assert first.duration == 12
    assert first.cost == pytest.approx(24.5)
    assert first.discount is None
    assert second.discount == pytest.approx(0.1)


def test_passenger_names_are_trimmed(raw_trips):
    taxi_park = build_ledger(raw_trips)
    assert taxi_park.trips[3].passengers == {Passenger("P0"), Passenger("P3")}


def test_list_passenger_cells(raw_trips):
    # parquet stores passengers as lists
    raw_trips["passengers"] = [["P0", "P1"], ["P0"], ["P2"], ["P0", "P3"]]
    taxi_park = build_ledger(raw_trips)
    assert taxi_park.trips[0].passengers == {Passenger("P0"), Passenger("P1")}


def test_roster_adds_idle_drivers(raw_trips):
    taxi_park = build_ledger(raw_trips, drivers=["D0", "D1", "D2", "D9"])
    assert find_fake_drivers(taxi_park) == {Driver("D9")}


def test_missing_columns():
    df = pd.DataFrame({"driver": ["D0"], "duration": [5]})
    with pytest.raises(ValueError, match="Schema Violation"):
        build_ledger(df)


def test_non_numeric_value(raw_trips):
    raw_trips.loc[0, "cost"] = "cheap"
    with pytest.raises(ValueError, match="Type Violation"):
        prepare_trips(raw_trips)


@pytest.mark.parametrize(
    "column, value, rule",
    [
        ("duration", "-1", "violation_duration"),
        ("duration", "12.5", "violation_duration"),
        ("cost", "-3.0", "violation_cost"),
        ("discount", "1.5", "violation_discount"),
        ("passengers", None, "violation_no_passengers"),
        ("driver", None, "violation_missing_value"),
    ],
)
def test_contract_violations_fail_the_build(raw_trips, column, value, rule):
    raw_trips.loc[1, column] = value

    with pytest.raises(LedgerIntegrityError, match="Ledger Integrity Breach") as exc_info:
        build_ledger(raw_trips)

    assert exc_info.value.stats[rule] == 1
    assert exc_info.value.stats["invalid_rows"] == 1
    assert len(exc_info.value.violations) == 1


def test_trips_must_use_roster_members(raw_trips):
    with pytest.raises(LedgerIntegrityError) as exc_info:
        build_ledger(raw_trips, drivers=["D0", "D1"], passengers=["P0", "P1", "P2"])

    stats = exc_info.value.stats
    assert stats["violation_unknown_driver"] == 1
    assert stats["violation_unknown_passenger"] == 1
    assert stats["invalid_rows"] == 1


def test_cost_derived_from_distance():
    df = pd.DataFrame(
        {
            "driver": ["D0", "D0"],
            "passengers": ["P0", "P1"],
            "duration": [10, 20],
            "distance": [5.0, 2.0],
            "discount": [0.2, None],
        }
    )
    taxi_park = build_ledger(df)

    assert [t.cost for t in taxi_park.trips] == pytest.approx([12.0, 22.0])


def test_empty_table_with_rosters():
    df = pd.DataFrame(columns=["driver", "passengers", "duration", "cost"])
    taxi_park = build_ledger(df, drivers=["D0", "D1"], passengers=["P0"])

    assert taxi_park.trips == ()
    assert find_fake_drivers(taxi_park) == {Driver("D0"), Driver("D1")}


# --- File based loading ---

@pytest.fixture
def ledger_files(tmp_path, raw_trips):
    trips_path = tmp_path / "trips.csv"
    drivers_path = tmp_path / "drivers.csv"
    passengers_path = tmp_path / "passengers.csv"

    raw_trips.to_csv(trips_path, index=False)
    pd.DataFrame({"driver": ["D0", "D1", "D2", "D3"]}).to_csv(drivers_path, index=False)
    pd.DataFrame({"passenger": ["P0", "P1", "P2", "P3", "P4"]}).to_csv(passengers_path, index=False)

    return str(trips_path), str(drivers_path), str(passengers_path)


def test_loader_reads_csv_files(ledger_files, tmp_path):
    trips_path, drivers_path, passengers_path = ledger_files
    loader = LedgerLoader(trips_path, drivers_path, passengers_path, artifact_dir=str(tmp_path))

    trips = loader.load_trips()
    taxi_park = loader.load_ledger(trips)

    assert len(taxi_park.trips) == 4
    assert len(taxi_park.all_drivers) == 4
    assert len(taxi_park.all_passengers) == 5
    assert trips.attrs["stats"]["trip_rows"] == 4
    assert find_fake_drivers(taxi_park) == {Driver("D3")}


def test_loader_keeps_names_as_text(tmp_path):
    trips_path = tmp_path / "trips.csv"
    trips_path.write_text("driver,passengers,duration,cost\n007,01;02,5,10.0\n")

    taxi_park = LedgerLoader(str(trips_path)).load_ledger()

    assert taxi_park.all_drivers == {Driver("007")}
    assert taxi_park.all_passengers == {Passenger("01"), Passenger("02")}


def test_loader_saves_violation_sample(ledger_files, tmp_path):
    trips_path, _, _ = ledger_files
    df = pd.read_csv(trips_path, dtype=str)
    df.loc[0, "duration"] = "-5"
    df.to_csv(trips_path, index=False)

    artifact_dir = tmp_path / "artifacts"
    loader = LedgerLoader(trips_path, artifact_dir=str(artifact_dir))
    trips = loader.load_trips()

    with pytest.raises(LedgerIntegrityError):
        loader.load_ledger(trips)

    sample_path = trips.attrs["violations_sample_path"]
    assert sample_path.startswith(str(artifact_dir))
    assert len(pd.read_csv(sample_path)) == 1


def test_loader_rejects_unknown_format(tmp_path):
    path = tmp_path / "trips.json"
    path.write_text("[]")
    with pytest.raises(ValueError, match="Unsupported table format"):
        LedgerLoader(str(path)).load_trips()


def test_roster_needs_its_column(tmp_path, ledger_files):
    trips_path, _, _ = ledger_files
    bad_roster = tmp_path / "drivers_bad.csv"
    bad_roster.write_text("name\nD0\n")

    loader = LedgerLoader(trips_path, drivers_path=str(bad_roster))
    with pytest.raises(ValueError, match="Schema Violation"):
        loader.load_ledger()


def test_padded_driver_names_are_one_driver(tmp_path):
    trips_path = tmp_path / "trips.csv"
    trips_path.write_text(
        "driver,passengers,duration,cost\n"
        "D1, P1 ,5,10.0\n"
        " D1 ,P1,7,4.0\n"
    )
    drivers_path = tmp_path / "drivers.csv"
    drivers_path.write_text("driver\nD1\n D2\n")

    taxi_park = LedgerLoader(str(trips_path), drivers_path=str(drivers_path)).load_ledger()

    assert taxi_park.all_drivers == {Driver("D1"), Driver("D2")}
    assert taxi_park.all_passengers == {Passenger("P1")}
    assert {t.driver for t in taxi_park.trips} == {Driver("D1")}
    assert find_fake_drivers(taxi_park) == {Driver("D2")}


def test_blank_driver_name_is_missing(raw_trips):
    raw_trips.loc[2, "driver"] = "   "

    with pytest.raises(LedgerIntegrityError) as exc_info:
        build_ledger(raw_trips)

    assert exc_info.value.stats["violation_missing_value"] == 1


def test_roster_is_read_once(ledger_files, tmp_path):
    trips_path, drivers_path, passengers_path = ledger_files
    loader = LedgerLoader(trips_path, drivers_path, passengers_path, artifact_dir=str(tmp_path))

    roster = loader.load_roster(drivers_path, "driver")
    os.remove(drivers_path)
    taxi_park = loader.load_ledger()

    assert roster == ["D0", "D1", "D2", "D3"]
    assert taxi_park.all_drivers == {Driver(name) for name in roster}
