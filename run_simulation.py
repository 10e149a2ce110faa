#!/usr/bin/env python3
"""
Childhood Weight Simulator - Main CLI Script

Runs the childhood body-composition model for a cohort described in a JSON
configuration file and writes the resulting trajectories as a CSV table.
"""

import argparse
import json
import logging
import os
import sys

import pandas as pd
from jsonschema import ValidationError, validate

from shared_models import SimulationError
from simulation_api import simulate_cohort, summarize_results

logger = logging.getLogger(__name__)

# Exit codes
EXIT_OK = 0
EXIT_INPUT_ERROR = 1
EXIT_INCORRECT_VALUES = 2

CONFIG_SCHEMA = {
    "type": "object",
    "required": ["cohort", "days", "intake"],
    "properties": {
        "cohort": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "required": ["age", "sex", "bmi_category", "ffm", "fm"],
                "properties": {
                    "age": {"type": "number", "minimum": 0},
                    "sex": {
                        "anyOf": [
                            {"type": "integer", "enum": [0, 1]},
                            {
                                "type": "string",
                                "pattern": "^(m|f|male|female|M|F|Male|Female|MALE|FEMALE)$",
                            },
                        ]
                    },
                    "bmi_category": {
                        "anyOf": [
                            {"type": "integer", "minimum": 1, "maximum": 4},
                            {
                                "type": "string",
                                "pattern": "^(underweight|under|normal|overweight|over|obese|Underweight|Normal|Overweight|Obese|UNDERWEIGHT|NORMAL|OVERWEIGHT|OBESE)$",
                            },
                        ]
                    },
                    "ffm": {"type": "number", "exclusiveMinimum": 0},
                    "fm": {"type": "number", "minimum": 0},
                },
                "additionalProperties": False,
            },
        },
        "days": {"type": "number", "exclusiveMinimum": 0},
        "dt": {"type": "number", "exclusiveMinimum": 0},
        "check_values": {"type": "boolean"},
        "reference_values": {
            "anyOf": [
                {"type": "integer", "enum": [0, 1]},
                {"type": "string", "enum": ["mean", "median"]},
            ]
        },
        "intake": {
            "type": "object",
            "oneOf": [
                {"required": ["kcal_per_day"]},
                {"required": ["matrix_csv"]},
                {"required": ["logistic"]},
            ],
            "properties": {
                "kcal_per_day": {
                    "anyOf": [
                        {"type": "number", "exclusiveMinimum": 0},
                        {
                            "type": "array",
                            "items": {"type": "number", "exclusiveMinimum": 0},
                        },
                    ]
                },
                "matrix_csv": {"type": "string"},
                "logistic": {
                    "type": "object",
                    "required": ["K", "Q", "A", "B", "nu", "C"],
                    "properties": {
                        "K": {"type": "number"},
                        "Q": {"type": "number"},
                        "A": {"type": "number"},
                        "B": {"type": "number"},
                        "nu": {"type": "number", "not": {"const": 0}},
                        "C": {"type": "number"},
                    },
                    "additionalProperties": False,
                },
            },
            "additionalProperties": False,
        },
    },
    "additionalProperties": False,
}


def load_config_json(config_path):
    """
    Loads and validates a JSON configuration file.

    Args:
        config_path (str): Path to the JSON configuration file.

    Returns:
        dict: Configuration dictionary with cohort, days and intake sections.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        json.JSONDecodeError: If the JSON is malformed.
        ValidationError: If the JSON doesn't match the required schema.
    """
    logger.info(f"Loading configuration from {config_path}")

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r") as f:
        config = json.load(f)

    validate(config, CONFIG_SCHEMA)

    logger.info(f"Loaded config with {len(config['cohort'])} individuals")
    return config


def resolve_intake(intake_config, config_dir):
    """
    Turn the intake section of a config into a value accepted by
    simulate_cohort. Relative matrix paths are resolved against the
    directory holding the config file.
    """
    if "kcal_per_day" in intake_config:
        return intake_config["kcal_per_day"]
    if "logistic" in intake_config:
        return dict(intake_config["logistic"])

    matrix_path = intake_config["matrix_csv"]
    if not os.path.isabs(matrix_path):
        matrix_path = os.path.join(config_dir, matrix_path)
    if not os.path.exists(matrix_path):
        raise FileNotFoundError(f"Intake matrix not found: {matrix_path}")
    # One row per step, one column per individual, no header
    return pd.read_csv(matrix_path, header=None)


def run_simulation(config_path, output_path=None, show_summary=False):
    """
    Load a config, run the model and write the trajectories.

    Returns:
        int: Process exit code
    """
    config = load_config_json(config_path)
    config_dir = os.path.dirname(os.path.abspath(config_path))

    cohort_df = pd.DataFrame(config["cohort"])
    intake = resolve_intake(config["intake"], config_dir)

    results = simulate_cohort(
        cohort_df,
        config["days"],
        intake,
        dt=config.get("dt", 1.0),
        check_values=config.get("check_values", False),
        reference_values=config.get("reference_values", 0),
    )

    if output_path is None:
        stem = os.path.splitext(os.path.basename(config_path))[0]
        output_path = f"{stem}_trajectories.csv"
    results.to_dataframe().to_csv(output_path, index=False)
    print(
        f"Wrote {results.n_steps + 1} time points for "
        f"{results.n_individuals} individuals to {output_path}"
    )

    if show_summary:
        print()
        summary = summarize_results(results)
        print(summary.to_string(index=False, float_format=lambda v: f"{v:.3f}"))

    if not results.correct_values:
        print()
        print("Warning: simulation stopped early, values are not plausible:")
        for message in results.messages:
            print(f"  - {message}")
        return EXIT_INCORRECT_VALUES
    return EXIT_OK


def main(argv=None):
    """Main CLI function with comprehensive argument parsing."""
    parser = argparse.ArgumentParser(
        description="Childhood body-composition simulator (Hall et al., 2013)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  child-weight-sim cohort.json                       # writes cohort_trajectories.csv
  child-weight-sim cohort.json --output out.csv      # custom output path
  child-weight-sim cohort.json --summary             # also print per-child summary
  child-weight-sim --help-config                     # describe the JSON format

Exit codes:
  0  simulation completed with plausible values
  1  invalid configuration or input
  2  simulation stopped early (Correct_Values is false)
        """,
    )

    parser.add_argument(
        "config_file",
        nargs="?",
        help="Path to JSON configuration file",
    )

    parser.add_argument(
        "--output",
        "-o",
        help="Path of the CSV file to write (default: <config>_trajectories.csv)",
    )

    parser.add_argument(
        "--summary",
        "-s",
        action="store_true",
        help="Print a per-individual summary table",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    parser.add_argument(
        "--help-config",
        action="store_true",
        help="Show detailed help about the JSON configuration format",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.help_config:
        show_config_help()
        return EXIT_OK

    if not args.config_file:
        parser.print_usage()
        print("Error: a configuration file is required.")
        print("Run with --help-config to see the expected JSON format.")
        return EXIT_INPUT_ERROR

    if not os.path.exists(args.config_file):
        print(f"Error: Configuration file not found: {args.config_file}")
        print()
        print("Please check the file path and try again.")
        print("Run with --help-config to see the expected JSON format.")
        return EXIT_INPUT_ERROR

    try:
        return run_simulation(
            args.config_file, output_path=args.output, show_summary=args.summary
        )
    except json.JSONDecodeError as e:
        print(f"Error: Configuration file is not valid JSON: {e}")
        return EXIT_INPUT_ERROR
    except ValidationError as e:
        print(f"Error: Invalid configuration: {e.message}")
        print("Run with --help-config to see the expected JSON format.")
        return EXIT_INPUT_ERROR
    except (FileNotFoundError, SimulationError) as e:
        print(f"Error: {e}")
        return EXIT_INPUT_ERROR
    except KeyboardInterrupt:
        print("\nSimulation interrupted by user.")
        return EXIT_INPUT_ERROR


def show_config_help():
    """Show detailed help about the JSON configuration format."""
    help_text = """
JSON Configuration Format
=========================

{
  "cohort": [
    {
      "age": <age in years>,
      "sex": <0|1|"male"|"female"|"m"|"f">,
      "bmi_category": <1-4|"underweight"|"normal"|"overweight"|"obese">,
      "ffm": <fat-free mass in kg>,
      "fm": <fat mass in kg>
    }
  ],
  "days": <number of days to simulate>,
  "dt": <time step in days, optional (default 1)>,
  "check_values": <true|false, optional (default false)>,
  "reference_values": <"mean"|"median"|0|1, optional (default "mean")>,
  "intake": { exactly one of the options below }
}

Intake options:
---------------
  {"kcal_per_day": 1800}                 constant intake for everyone
  {"kcal_per_day": [1800, 1650]}         constant intake per individual
  {"matrix_csv": "intake.csv"}           one row per step, one column per
                                         individual, no header; relative to
                                         the config file
  {"logistic": {"K": 2000, "Q": 1, "A": 1500, "B": 0.3, "nu": 1, "C": 1}}
                                         A + (K - A) / (C + Q exp(-B age))^(1/nu)

Notes:
- BMI categories: 1 underweight, 2 normal, 3 overweight, 4 obese
- A matrix must provide at least floor(days / dt) rows
- With check_values enabled the run stops at the first implausible state
  (FFM or FM not positive, weight above 350 kg, or more than 1 kg/day change)

Example:
--------
{
  "cohort": [
    {"age": 6, "sex": "male", "bmi_category": "normal", "ffm": 17.0, "fm": 3.5},
    {"age": 8, "sex": "female", "bmi_category": 3, "ffm": 21.6, "fm": 7.4}
  ],
  "days": 365,
  "check_values": true,
  "intake": {"kcal_per_day": [1800, 1900]}
}
    """
    print(help_text)


if __name__ == "__main__":
    sys.exit(main())
