import argparse
import json
import logging
import os

import mlflow
import yaml

from taxipark.ledger_loader import LedgerLoader
from taxipark.ledger_validation import LedgerValidator
from taxipark.models import Driver
from taxipark.report import build_report
import taxipark.ledger_contract as lc


# Logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logging.getLogger("great_expectations").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def load_params(params_path: str) -> dict:
    with open(params_path, "r") as f:
        return yaml.safe_load(f)


def serialize_gx_results(results) -> dict:
    output = {"success": results.success, "results": []}
    for r in results.results:
        output["results"].append(
            {
                "success": r.success,
                "expectation": r.expectation_config.type,
                "column": r.expectation_config.kwargs.get("column"),
                "unexpected_list": r.result.get("partial_unexpected_list", []),
            }
        )
    return output


def safe_log_artifact(path: str, artifact_path: str | None = None) -> None:
    """Log file to MLflow if it exists (no crash if missing)."""
    if path and os.path.exists(path):
        mlflow.log_artifact(path, artifact_path=artifact_path)


def report_metrics(report: dict) -> dict:
    return {
        "ledger_drivers": report["ledger"]["drivers"],
        "ledger_passengers": report["ledger"]["passengers"],
        "ledger_trips": report["ledger"]["trips"],
        "fake_drivers": len(report["fake_drivers"]),
        "faithful_passengers": len(report["faithful_passengers"]["passengers"]),
        "frequent_passengers": len(report["frequent_passengers"]["passengers"]),
        "smart_passengers": len(report["smart_passengers"]),
    }


def run_queries(params_path: str, min_trips: int | None = None, driver: str | None = None) -> dict:
    params = load_params(params_path)

    # --- Read config ---
    trips_path = params["data"]["trips_path"]
    drivers_path = params["data"].get("drivers_path")
    passengers_path = params["data"].get("passengers_path")

    query_params = params.get("queries", {})
    min_trips = int(min_trips if min_trips is not None else query_params.get("min_trips", 1))
    driver_name = driver or query_params.get("driver")
    if not driver_name:
        raise ValueError("No driver configured for the frequent passengers query (queries.driver or --driver)")

    exp_name = params["mlflow"]["experiment_name"]

    # --- Components ---
    artifact_dir = os.environ.get("LOCAL_ARTIFACT_DIR", "/tmp/taxipark_artifacts")
    loader = LedgerLoader(
        trips_path,
        drivers_path=drivers_path,
        passengers_path=passengers_path,
        artifact_dir=artifact_dir,
    )

    # --- MLflow ---
    mlflow.set_experiment(exp_name)

    with mlflow.start_run() as run:
        logger.info(f"Starting Run: {run.info.run_id}")

        mlflow.log_param("contract_version", lc.CONTRACT_VERSION)
        mlflow.log_param("data_source", trips_path)
        mlflow.log_params({"min_trips": min_trips, "driver": driver_name})

        # 1) Load
        try:
            trips = loader.load_trips()
        except Exception as e:
            mlflow.set_tag("status", "load_failed")
            logger.exception(f"Loader failed: {e}")
            raise

        # 2) Validate with Great Expectations
        roster = loader.load_roster(drivers_path, lc.DRIVER_ROSTER_COLUMN)
        validator = LedgerValidator(trips, drivers=roster)
        try:
            validator.validate()
            mlflow.set_tag("data_quality", "passed")
        except Exception as e:
            mlflow.set_tag("data_quality", "failed")
            logger.exception(f"Validation failed: {e}")

            os.makedirs(artifact_dir, exist_ok=True)
            gx_report_path = os.path.join(artifact_dir, "gx_report.json")
            if validator.validation_results:
                with open(gx_report_path, "w") as f:
                    json.dump(serialize_gx_results(validator.validation_results), f, indent=2, default=str)
                safe_log_artifact(gx_report_path)

            raise

        # 3) Build the ledger (contract guard raises on any broken trip)
        try:
            park = loader.load_ledger(trips)
        except ValueError:
            mlflow.set_tag("status", "ledger_rejected")
            for k, v in trips.attrs.get("stats", {}).items():
                mlflow.log_metric(f"loader_{k}", float(v))
            safe_log_artifact(trips.attrs.get("violations_sample_path"))
            raise

        # 4) Query
        report = build_report(park, min_trips=min_trips, driver=Driver(driver_name))

        mlflow.log_metrics({k: float(v) for k, v in report_metrics(report).items()})
        mlflow.set_tag("pareto_principle_holds", str(report["pareto_principle_holds"]))
        period = report["most_frequent_duration_period"]
        mlflow.set_tag("most_frequent_duration_period", "none" if period is None else f"{period[0]}-{period[1]}")

        os.makedirs(artifact_dir, exist_ok=True)
        report_path = os.path.join(artifact_dir, "taxipark_report.json")
        with open(report_path, "w") as f:
            json.dump(report, f, indent=2)
        safe_log_artifact(report_path)

        logger.info("Query run finished successfully.")
        return report


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--config", default="params.yaml", help="Path to config file")
    parser.add_argument("--min-trips", type=int, default=None, help="Override queries.min_trips")
    parser.add_argument("--driver", default=None, help="Override queries.driver")
    args = parser.parse_args()
    report = run_queries(args.config, min_trips=args.min_trips, driver=args.driver)
    print(json.dumps(report, indent=2))
