#!/usr/bin/env python3
"""
Gravity Harness CLI

Command-line interface for the bridge halt / recovery scenario.

Usage:
    gravity-harness keys [--count N] [--prefix PREFIX] [--output FILE] [--show-private]
    gravity-harness simulate [--config FILE] [--keys FILE] [--validators N] [--minority 1,2] [--fast]
"""

import asyncio
import json
from pathlib import Path
from typing import Optional

import click

from ..config.loader import HarnessConfig, load_config
from ..constants import ADDRESS_PREFIX
from ..exceptions import ConfigurationError, InvalidKeyError, ScenarioFailure
from ..logger import configure_logging, get_logger
from ..scenario.orchestrator import ScenarioClients, ScenarioOrchestrator
from ..simulation.bridge import build_simulation
from ..validators.identity import BridgeUser, ValidatorSet

logger = get_logger(__name__)

# Timings used by --fast so a simulated run finishes in seconds
FAST_TIMINGS = {
    "operation_timeout": 2.0,
    "poll_interval": 0.05,
    "halt_deadline": 2.0,
    "halt_observation_window": 0.3,
    "recovery_deadline": 2.0,
    "liveness_deadline": 2.0,
    "post_recovery_settle": 0.2,
}


def load_validator_set(path: Path) -> ValidatorSet:
    """Load a validator set written by ``gravity-harness keys --show-private``."""
    try:
        entries = json.loads(path.read_text())
    except (OSError, ValueError) as e:
        raise click.ClickException(f"Cannot read keys from {path}: {e}")
    try:
        return ValidatorSet.from_hex_keys(entries["validators"] if isinstance(entries, dict) else entries)
    except (KeyError, TypeError, InvalidKeyError) as e:
        raise click.ClickException(f"Invalid key file {path}: {e}")


@click.group()
@click.version_option(version="1.0.0", prog_name="gravity-harness")
@click.option("--log-level", default=None, help="Override the log level (DEBUG, INFO, ...)")
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str]):
    """Gravity bridge halt / recovery scenario runner."""
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level
    if log_level:
        configure_logging(log_level=log_level.upper())


@cli.command("keys")
@click.option("--count", "-n", default=3, show_default=True, help="Number of validators")
@click.option("--prefix", default=ADDRESS_PREFIX, show_default=True, help="Bech32 address prefix")
@click.option("--output", "-o", type=click.Path(), help="Write the set to a JSON file")
@click.option("--show-private", is_flag=True, help="Include private keys (DANGEROUS)")
def keys_cmd(count: int, prefix: str, output: Optional[str], show_private: bool):
    """Generate a validator set and print its addresses.

    Examples:

        gravity-harness keys --count 4

        gravity-harness keys --show-private --output validators.json
    """
    try:
        validator_set = ValidatorSet.generate(count)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--count")

    validators = []
    for identity in validator_set:
        entry = identity.to_dict(prefix)
        if show_private:
            entry["validator_key"] = identity.validator_key.to_hex()
            entry["orchestrator_key"] = identity.orchestrator_key.to_hex()
            entry["ethereum_key"] = identity.ethereum_key.to_hex()
        validators.append(entry)

    document = json.dumps({"validators": validators}, indent=2)
    if output:
        Path(output).write_text(document)
        click.echo(click.style(f"✓ Wrote {count} validators to {output}", fg="green"))
        if show_private:
            click.echo(click.style("IMPORTANT: This file contains private keys!", fg="yellow"))
    else:
        click.echo(document)


@cli.command("simulate")
@click.option("--config", "-c", "config_path", type=click.Path(), help="TOML config file")
@click.option("--keys", "keys_path", type=click.Path(exists=True), help="Validator key file")
@click.option("--validators", "-n", type=int, help="Number of validators (overrides config)")
@click.option("--minority", help="Comma separated faulty validator indices (overrides config)")
@click.option("--initial-nonce", default=0, show_default=True, help="Event nonce before the run")
@click.option("--no-redistribute", is_flag=True, help="Skip stake redistribution")
@click.option("--fast", is_flag=True, help="Use short timings")
@click.pass_context
def simulate_cmd(
    ctx: click.Context,
    config_path: Optional[str],
    keys_path: Optional[str],
    validators: Optional[int],
    minority: Optional[str],
    initial_nonce: int,
    no_redistribute: bool,
    fast: bool,
):
    """Run the halt / recovery scenario against the simulated bridge.

    Prints the scenario report as JSON. Exits with status 1 on failure.

    Examples:

        gravity-harness simulate --fast

        gravity-harness simulate --validators 5 --minority 2,3,4 --fast
    """
    config = load_config(config_path)
    if not ctx.obj.get("log_level"):
        configure_logging(log_level=config.logging.level, log_file=config.logging.file)
    if validators is not None:
        config.scenario.validator_count = validators
    if minority:
        try:
            config.scenario.minority_indices = [int(i) for i in minority.split(",") if i.strip()]
        except ValueError:
            raise click.BadParameter(f"not a list of indices: {minority}", param_hint="--minority")
    if no_redistribute:
        config.scenario.redistribute_stake = False
    if fast:
        for name, value in FAST_TIMINGS.items():
            setattr(config.timing, name, value)

    if keys_path:
        validator_set = load_validator_set(Path(keys_path))
        config.scenario.validator_count = len(validator_set)
    else:
        validator_set = ValidatorSet.generate(config.scenario.validator_count)

    try:
        report = asyncio.run(run_simulation(config, validator_set, initial_nonce))
    except ConfigurationError as e:
        raise click.ClickException(f"Invalid configuration: {e}")
    except ScenarioFailure as e:
        click.echo(json.dumps(e.report.to_dict(), indent=2))
        click.echo(click.style(f"✗ {e}", fg="red"), err=True)
        raise SystemExit(1)

    click.echo(json.dumps(report.to_dict(), indent=2))
    click.echo(click.style("✓ Bridge halted and recovered", fg="green"), err=True)


async def run_simulation(config: HarnessConfig, validator_set: ValidatorSet, initial_nonce: int = 0):
    """Wire a fresh simulated bridge to the orchestrator and run it."""
    bridge, ethereum = build_simulation(
        validator_set,
        initial_event_nonce=initial_nonce,
        prefix=config.chain.address_prefix,
        staking_denom=config.chain.staking_denom,
        starting_stake=config.scenario.starting_stake_per_validator,
        min_deposit=config.scenario.proposal_deposit,
    )
    config.chain.erc20_address = ethereum.token_contract
    clients = ScenarioClients(
        query=bridge,
        submit=bridge,
        governance=bridge,
        ethereum=ethereum,
        deposits=ethereum,
        staking=bridge,
    )
    orchestrator = ScenarioOrchestrator(validator_set, BridgeUser.generate(), clients, config)
    logger.info("Running scenario against simulated bridge (%d validators)", len(validator_set))
    return await orchestrator.run()


if __name__ == "__main__":
    cli()
