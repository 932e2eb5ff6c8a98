import typer
import logging

from pydantic import ValidationError

from covsynth.utils import setup_logging
from covsynth.errors import SimulationError

logger = logging.getLogger(__name__)

app = typer.Typer()

# Configuration problems abort the same way simulation failures do
CONFIG_ERRORS = (FileNotFoundError, ValidationError)


@app.command()
def simulate(
    config_file: str = typer.Option(None, "--config", help="Configuration file path"),
    n: int = typer.Option(None, "--n", help="Override population size from config"),
    seed: int = typer.Option(None, "--seed", help="Override seed from config"),
    out: str = typer.Option(None, "--out", help="Override output directory from config"),
    fmt: str = typer.Option(None, "--format", help="Output format: parquet or csv"),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level"),
):
    """Generate the synthetic COVID-19 cohort table"""
    from covsynth.data_gen import generate

    setup_logging(log_level)
    try:
        generate(config_file=config_file, n=n, seed=seed, out=out, fmt=fmt)
    except CONFIG_ERRORS as e:
        logger.error("Invalid configuration: %s", e)
        raise typer.Exit(code=1)
    except SimulationError as e:
        logger.error("Simulation aborted: %s", e)
        raise typer.Exit(code=1)


@app.command()
def calibrate(
    config_file: str = typer.Option(None, "--config", help="Configuration file path"),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level"),
):
    """Fit and print the age and event-time distribution parameters"""
    from covsynth.calibrate import calibrate_age, calibrate_event_times
    from covsynth.config import load_settings

    setup_logging(log_level)
    try:
        settings = load_settings(config_file)
        age = calibrate_age(settings)
        event_times = calibrate_event_times(settings)
    except CONFIG_ERRORS as e:
        logger.error("Invalid configuration: %s", e)
        raise typer.Exit(code=1)
    except SimulationError as e:
        logger.error("Calibration failed: %s", e)
        raise typer.Exit(code=1)

    typer.echo(f"age: shape={age.shape:.4f} rate={age.rate:.5f}")
    for event, params in event_times.items():
        typer.echo(f"{event}: mu={params.mu:.4f} sigma={params.sigma:.4f} Q={params.Q:.4f}")


if __name__ == "__main__":
    app()
