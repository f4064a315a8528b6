"""
taxipark/ledger_contract.py

Single Source of Truth for Ledger Rules and Query Constants.
"""

# Versioning allows us to track which rules were active
# for a specific query run.
CONTRACT_VERSION = "1.0.0"


# -------------------------------------------------------------------
# Schema Definition
# -------------------------------------------------------------------
# One row per trip.
REQUIRED_COLUMNS = [
    "driver",
    "passengers",
    "duration",
]

# A trip table must carry its fare either directly ("cost")
# or as a distance we can derive the fare from.
COST_COLUMN = "cost"
DISTANCE_COLUMN = "distance"
DISCOUNT_COLUMN = "discount"

# Roster files hold a single column of names.
DRIVER_ROSTER_COLUMN = "driver"
PASSENGER_ROSTER_COLUMN = "passenger"

# Flat files (CSV) store the passenger set as "P1;P2;P3".
PASSENGER_SEPARATOR = ";"


# -------------------------------------------------------------------
# Domain Rules (Inclusive Boundaries)
# -------------------------------------------------------------------
# Duration: whole minutes, no upper bound.
DURATION_MIN = 0

# Financials: no negative fares.
COST_MIN = 0.0
DISTANCE_MIN = 0.0

# Discount is a fraction of the fare taken off the trip.
# Its absence (null) means "no discount".
DISCOUNT_MIN = 0.0
DISCOUNT_MAX = 1.0


# -------------------------------------------------------------------
# Query Rules
# -------------------------------------------------------------------
# Trip durations are grouped into periods [0,9], [10,19], ...
DURATION_PERIOD_WIDTH = 10

# Pareto: PARETO_DRIVER_SHARE of the drivers should bring in
# PARETO_REVENUE_SHARE of the revenue.
PARETO_REVENUE_SHARE = 0.8
PARETO_DRIVER_SHARE = 0.2

# Fares are floats: running totals within this relative distance of the
# revenue share count as reaching it.
PARETO_REL_TOLERANCE = 1e-9
