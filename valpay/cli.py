"""CLI entry point for valpay."""

import asyncio
import logging
import sys
from typing import Optional

import click

from .config import Config
from .payments import PaymentReport, PaymentsError


def setup_logging(level: str) -> None:
    """Set up logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    if level.upper() != "DEBUG":
        logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


def split_ids(values: tuple[str, ...]) -> list[str]:
    """Accept ids given repeatedly and/or comma separated."""
    ids = []
    for value in values:
        ids.extend(part.strip() for part in value.split(",") if part.strip())
    return ids


def load_config(config_path: Optional[str], **overrides) -> Config:
    try:
        config = Config.from_yaml(config_path) if config_path else Config()
    except ValueError as e:
        raise click.ClickException(str(e)) from e
    return config.merged(**overrides)


def print_report(report: PaymentReport) -> None:
    click.echo(f"Slots {report.start_slot}..{report.end_slot}: {report.processed_slots} processed")

    click.echo("Consensus layer payments by withdrawal address:")
    for address, amount in sorted(report.consensus_totals_by_address.items()):
        click.echo(f"  {address}: {amount}")

    click.echo("Execution layer payments by fee recipient:")
    for address, amount in sorted(report.execution_totals_by_address.items()):
        click.echo(f"  {address}: {amount}")

    click.echo("Per validator:")
    for record in report.validators:
        click.echo(
            f"  {record.index}: consensus={record.consensus_total} "
            f"execution={record.execution_total}"
        )

    if report.incomplete:
        click.echo(
            f"WARNING: {len(report.failed_slots)} slots failed, totals are a lower bound",
            err=True,
        )


@click.group()
@click.version_option(package_name="valpay")
def cli():
    """valpay - validator payment totals from beacon and execution nodes."""
    pass


@cli.command()
@click.option(
    "--ids",
    multiple=True,
    required=True,
    help="Validator index or public key (repeatable, or comma separated)",
    envvar="VALPAY_IDS",
)
@click.option("--start", required=True, help="Start date (YYYY-MM-DD, UTC, inclusive)")
@click.option("--end", required=True, help="End date (YYYY-MM-DD, UTC, exclusive)")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True),
    help="Path to YAML config file",
    envvar="VALPAY_CONFIG",
)
@click.option(
    "--beacon-api-url",
    help="Beacon API base URL",
    envvar="VALPAY_BEACON_API_URL",
)
@click.option(
    "--rpc-url",
    help="Execution JSON-RPC URL",
    envvar="VALPAY_RPC_URL",
)
@click.option(
    "--rpc-jwt-secret",
    type=click.Path(exists=True),
    help="Path to JWT secret file for authenticated RPC endpoints",
    envvar="VALPAY_RPC_JWT_SECRET",
)
@click.option(
    "--concurrency",
    type=click.IntRange(min=1),
    help="Maximum number of slots processed at once",
    envvar="VALPAY_CONCURRENCY",
)
@click.option(
    "--max-attempts",
    type=click.IntRange(min=1),
    help="Attempts per request before giving up",
    envvar="VALPAY_MAX_ATTEMPTS",
)
@click.option(
    "--metrics-port",
    type=int,
    help="Serve Prometheus metrics on this port (0 disables)",
    envvar="VALPAY_METRICS_PORT",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level",
    envvar="VALPAY_LOG_LEVEL",
)
def payments(
    ids: tuple[str, ...],
    start: str,
    end: str,
    config_path: Optional[str],
    beacon_api_url: Optional[str],
    rpc_url: Optional[str],
    rpc_jwt_secret: Optional[str],
    concurrency: Optional[int],
    max_attempts: Optional[int],
    metrics_port: Optional[int],
    log_level: Optional[str],
):
    """Total consensus and execution payments to validators between two dates."""
    config = load_config(
        config_path,
        beacon_api_url=beacon_api_url,
        rpc_url=rpc_url,
        rpc_jwt_secret_path=rpc_jwt_secret,
        concurrency=concurrency,
        max_attempts=max_attempts,
        metrics_port=metrics_port,
        log_level=log_level,
    )
    setup_logging(config.log_level)
    logger = logging.getLogger(__name__)

    from .metrics import start_metrics_server
    from .payments import run_payments

    validator_ids = split_ids(ids)
    logger.info("Starting payment scan")
    logger.info(f"  Beacon API: {config.beacon_api_url}")
    logger.info(f"  RPC: {config.rpc_url}")
    logger.info(f"  Validators: {validator_ids}")
    logger.info(f"  Dates: {start} to {end}")
    logger.info(f"  Concurrency: {config.concurrency}")

    if config.metrics_port:
        start_metrics_server(config.metrics_port)

    try:
        report = asyncio.run(run_payments(config, validator_ids, start, end))
    except PaymentsError as e:
        raise click.ClickException(str(e)) from e
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(130)

    print_report(report)


@cli.command("withdrawal-address")
@click.option(
    "--ids",
    multiple=True,
    required=True,
    help="Validator index or public key (repeatable, or comma separated)",
    envvar="VALPAY_IDS",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True),
    help="Path to YAML config file",
    envvar="VALPAY_CONFIG",
)
@click.option(
    "--beacon-api-url",
    help="Beacon API base URL",
    envvar="VALPAY_BEACON_API_URL",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level",
    envvar="VALPAY_LOG_LEVEL",
)
def withdrawal_address(
    ids: tuple[str, ...],
    config_path: Optional[str],
    beacon_api_url: Optional[str],
    log_level: Optional[str],
):
    """Print the execution withdrawal address of each validator."""
    config = load_config(config_path, beacon_api_url=beacon_api_url, log_level=log_level)
    setup_logging(config.log_level)

    from .payments import run_withdrawal_lookup

    results = asyncio.run(run_withdrawal_lookup(config, split_ids(ids)))
    for lookup in results:
        if lookup.withdrawal_address:
            click.echo(f"{lookup.identifier}: {lookup.withdrawal_address}")
        else:
            click.echo(f"{lookup.identifier}: error: {lookup.error}")


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
