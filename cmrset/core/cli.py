"""
cmrset CLI entrypoint — defines commands for inspecting and evaluating the
formula registry, aggregating tabular series, rendering legends and running
the SWIR1 / SWIR2 comparison on Earth Engine.
"""

import sys
from pathlib import Path

import click  # type: ignore
from click import echo
import pandas as pd

from cmrset.analytics.expression import evaluate_formula, mutate_frame
from cmrset.analytics.timeseries import calendar_month_means_frame
from cmrset.core.config import ConfigManager, ConfigValidationError
from cmrset.core.logger import Logger
from cmrset.ingestion.eemanager import EarthEngineManager
from cmrset.ingestion.indices import INDEX_REGISTRY, get_formula
from cmrset.services.experiment import run_experiment
from cmrset.visualization.legend import POSITIONS, legend_horz

logger = Logger.get_logger(__name__)


def _read_table(path: str) -> pd.DataFrame:
    """Return a DataFrame loaded from CSV or Parquet at *path*."""

    return (
        pd.read_parquet(path)
        if Path(path).suffix.lower() == ".parquet"
        else pd.read_csv(path)
    )


def _parse_bands(pairs) -> dict:
    bands = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep:
            raise click.BadParameter(f"Expected BAND=VALUE, got '{pair}'")
        try:
            bands[name.strip()] = float(value)
        except ValueError as e:
            raise click.BadParameter(f"Band '{name}' value is not a number") from e
    return bands


def _parse_months(value: str) -> list[int]:
    try:
        months = [int(m) for m in value.split(",") if m.strip()]
    except ValueError as e:
        raise click.BadParameter(f"Invalid month list '{value}'") from e
    if not months or any(m < 1 or m > 12 for m in months):
        raise click.BadParameter("Months must be between 1 and 12")
    return months


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log at DEBUG level")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Also write log records to this file",
)
def cli(verbose, log_file):
    """cmrset: CMRSET crop coefficient and ETa toolkit for Earth Engine."""
    Logger.setup(
        level="DEBUG" if verbose else None,
        log_file=log_file,
        force=bool(verbose or log_file),
    )


@cli.group()
def formulas():
    """Inspect and evaluate the formula registry."""


@formulas.command(name="list")
def list_formulas():
    """List every formula with its expression and input bands."""
    for name in INDEX_REGISTRY:
        formula = get_formula(name)
        inputs = ", ".join(formula["bands"].values())
        echo(f"{name:<15} {formula['expr']}  [{inputs}]")


@formulas.command(name="eval")
@click.argument("names", nargs=-1, required=True)
@click.option(
    "--band",
    "-b",
    "band_pairs",
    multiple=True,
    help="Input band value as BAND=VALUE (e.g. -b nir=0.3).",
)
def eval_formulas(names, band_pairs):
    """
    Evaluate NAMES in order on scalar band values; later formulas see the
    results of earlier ones.
    """
    bands = _parse_bands(band_pairs)
    try:
        for name in names:
            value = float(evaluate_formula(name, bands))
            bands[get_formula(name)["name"]] = value
            echo(f"{get_formula(name)['name']} = {value:.6g}")
    except ValueError as e:
        echo(f"❌  {e}", err=True)
        sys.exit(1)


@formulas.command(name="frame")
@click.argument("table", type=click.Path(exists=True))
@click.option(
    "--formula", "-f", "names", multiple=True, required=True, help="Formula to add."
)
@click.option(
    "--output", "-o", type=click.Path(), default=None, help="Output CSV path."
)
@click.option(
    "--only-new", is_flag=True, default=False, help="Write only the new columns."
)
def frame(table, names, output, only_new):
    """Add formula columns to a CSV/Parquet TABLE of band values."""
    try:
        df = _read_table(table)
        out = mutate_frame(df, list(names), include_origin=not only_new)
    # pylint: disable=broad-exception-caught
    except Exception as e:
        echo(f"❌  {e}", err=True)
        sys.exit(1)
    if output:
        out.to_csv(output, index=False)
        echo(f"✅  Wrote {len(out)} rows to `{output}`")
    else:
        echo(out.to_csv(index=False))


@cli.command()
@click.argument("table", type=click.Path(exists=True))
@click.option(
    "--months", "-m", default="12,1,2", help="Comma-separated calendar months."
)
@click.option("--date-col", default="date", help="Date column name.")
@click.option("--output", "-o", type=click.Path(), default=None)
def monthly(table, months, date_col, output):
    """Average a TABLE by calendar month, pooling years."""
    month_list = _parse_months(months)
    df = _read_table(table)
    if date_col not in df.columns:
        raise click.BadParameter(f"Column '{date_col}' not in {table}")
    values = [c for c in df.select_dtypes("number").columns if c != date_col]
    out = calendar_month_means_frame(df, month_list, date_col, values).reset_index()
    if output:
        out.to_csv(output, index=False)
        echo(f"✅  Wrote monthly means to `{output}`")
    else:
        echo(out.to_csv(index=False))


@cli.command()
@click.argument("preset")
@click.option("--output", "-o", type=click.Path(), default="legend.png")
@click.option("--title", "-t", default="", help="Legend title.")
@click.option(
    "--position", type=click.Choice(list(POSITIONS)), default="bottom-left"
)
@click.option("--config", "config_path", type=click.Path(exists=True), default=None)
def legend(preset, output, title, position, config_path):
    """Render the legend of a visualisation PRESET (e.g. rmi_diff) to PNG."""
    cfg = ConfigManager(config_path)
    try:
        vis = cfg.get_vis(preset)
    except ConfigValidationError as e:
        raise click.BadParameter(str(e)) from e
    legend_horz(vis, title, output, position)
    echo(f"✅  Legend written to `{output}`")


@cli.command()
@click.option("--config", "config_path", type=click.Path(exists=True), default=None)
@click.option("--output", "-o", type=click.Path(), default="cmrset_output")
@click.option("--figure1/--no-figure1", default=None, help="RMI and Kc differences.")
@click.option("--figure2/--no-figure2", default=None, help="ETa and Irrest differences.")
@click.option(
    "--district",
    type=click.Path(exists=True),
    default=None,
    help="Vector file to use as irrigation district instead of the EE asset.",
)
@click.option("--series/--no-series", default=True, help="Fetch the district chart.")
@click.option("--credentials", type=click.Path(exists=True), default=None)
@click.option("--project", default=None, help="Earth Engine cloud project.")
def run(config_path, output, figure1, figure2, district, series, credentials, project):
    """Run the SWIR1 / SWIR2 comparison and write map, legends and chart."""
    try:
        cfg = ConfigManager(config_path)
        if figure1 is not None:
            cfg.config["figure1"] = figure1
        if figure2 is not None:
            cfg.config["figure2"] = figure2
        mgr = EarthEngineManager(credential_path=credentials, project=project)
        result = run_experiment(
            cfg,
            output_dir=output,
            ee_manager_instance=mgr,
            district_file=district,
            fetch_series=series,
        )
    # pylint: disable=broad-exception-caught
    except Exception as e:
        logger.exception("Experiment failed")
        echo(f"❌  Experiment failed: {e}", err=True)
        sys.exit(1)
    for key, path in sorted(result.outputs.items()):
        echo(f"✅  {key}: {path}")


if __name__ == "__main__":
    cli()
