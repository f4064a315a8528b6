import logging
from typing import Iterable, Optional

import pandas as pd
import great_expectations as gx
import great_expectations.expectations as gxe
from great_expectations.core.expectation_suite import ExpectationSuite
import taxipark.ledger_contract as lc

logger = logging.getLogger(__name__)


class LedgerValidator:
    def __init__(self, df: pd.DataFrame, drivers: Optional[Iterable[str]] = None):
        self.df = df
        self.drivers = None if drivers is None else sorted({str(d) for d in drivers})
        # Ephemeral Context: In-memory configuration, nothing is written to disk.
        self.context = gx.get_context(mode="ephemeral")
        self.datasource_name = "pandas_datasource"
        self.asset_name = "trip_ledger_dataframe"
        self.suite_name = "trip_ledger_suite"
        self.validation_results = None

    def build_suite(self) -> ExpectationSuite:
        suite = ExpectationSuite(name=self.suite_name)

        # --- Rule A: Structural Integrity ---
        for col in lc.REQUIRED_COLUMNS + [lc.COST_COLUMN]:
            suite.add_expectation(gxe.ExpectColumnToExist(column=col))

        for col in ["driver", "duration", lc.COST_COLUMN]:
            suite.add_expectation(gxe.ExpectColumnValuesToNotBeNull(column=col))

        # --- Rule B: Semantic Domains (Contract Enforcement) ---
        suite.add_expectation(
            gxe.ExpectColumnValuesToBeBetween(column="duration", min_value=lc.DURATION_MIN)
        )

        suite.add_expectation(
            gxe.ExpectColumnValuesToBeBetween(column=lc.COST_COLUMN, min_value=lc.COST_MIN)
        )

        # Nulls are skipped here: a missing discount is a valid trip.
        if lc.DISCOUNT_COLUMN in self.df.columns:
            suite.add_expectation(
                gxe.ExpectColumnValuesToBeBetween(
                    column=lc.DISCOUNT_COLUMN,
                    min_value=lc.DISCOUNT_MIN,
                    max_value=lc.DISCOUNT_MAX,
                )
            )

        # --- Rule C: Roster Membership ---
        if self.drivers is not None:
            suite.add_expectation(
                gxe.ExpectColumnValuesToBeInSet(column="driver", value_set=self.drivers)
            )

        return suite

    def validate(self) -> bool:
        logger.info("Validating trip ledger with Great Expectations (v1.x)...")

        # 1. Setup Datasource (Idempotent)
        try:
            ds = self.context.data_sources.get(self.datasource_name)
        except KeyError:
            ds = self.context.data_sources.add_pandas(self.datasource_name)

        try:
            asset = ds.get_asset(self.asset_name)
        except LookupError:
            asset = ds.add_dataframe_asset(name=self.asset_name)

        # 2. Create Expectation Suite
        suite = self.build_suite()

        # 3. Run Validation (names compared as text)
        frame = self.df
        if "passengers" in frame.columns:
            frame = frame.assign(
                passengers=frame["passengers"].map(
                    lambda names: lc.PASSENGER_SEPARATOR.join(names) if isinstance(names, list) else names
                )
            )
        if "driver" in frame.columns:
            frame = frame.assign(
                driver=frame["driver"].map(lambda d: d if pd.isna(d) else str(d))
            )
        batch_def = asset.add_batch_definition_whole_dataframe("whole_df")
        batch = batch_def.get_batch(batch_parameters={"dataframe": frame})
        self.validation_results = batch.validate(suite)

        # 4. Result Handling
        if not self.validation_results.success:
            logger.error("GX VALIDATION FAILED!")
            for res in self.validation_results.results:
                if not res.success:
                    col = res.expectation_config.kwargs.get("column", "Table-Level")
                    type_ = res.expectation_config.type
                    logger.error(f"   - Violation: {col} | Rule: {type_}")

            raise ValueError("Critical Ledger Validation Failed. Check the MLflow run for details.")

        logger.info("Great Expectations passed.")
        return True
