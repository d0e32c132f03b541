"""
sportspredict/cli.py

Command line tools for operators.

Usage:
    sportspredict odds 100 25
    sportspredict settle stakes.json --winner out-a --prediction-id pred-1 --ops
    sportspredict sign-token --prediction-id pred-1 --username alice --outcome-id out-a --amount 50
    sportspredict verify-token <token>

The stakes file is either a list of stakes or an object with "stakes" and
optionally "totalPool". Each stake has username, outcomeId, amount and
optionally id. When totalPool is omitted it is the sum of all stakes.
"""

import json
import logging
import sys

import click

from .config import PLATFORM_FEE_PCT, EscrowConfig
from .errors import ConfigurationError
from .blockchain.escrow import build_fee_ops, build_payout_ops
from .protocol.models import ZERO, StakeTokenData, to_decimal
from .protocol.odds import calculate_odds
from .protocol.settlement import calculate_settlement
from .protocol.stake_token import sign_stake_token, verify_stake_token

logger = logging.getLogger("sportspredict.cli")


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def main(verbose):
    """Prediction-market settlement and escrow tools."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )


@main.command()
@click.argument("total_pool", type=float)
@click.argument("outcome_pool", type=float)
@click.option("--fee", type=float, default=PLATFORM_FEE_PCT, show_default=True,
              help="Platform fee fraction")
def odds(total_pool, outcome_pool, fee):
    """Show odds for an outcome pool within a total pool."""
    result = calculate_odds(total_pool, outcome_pool, fee)
    click.echo(json.dumps(result.to_dict(), indent=2))


@main.command()
@click.argument("stakes_file", type=click.File("r"))
@click.option("--winner", required=True, help="Winning outcome id")
@click.option("--fee", type=float, default=PLATFORM_FEE_PCT, show_default=True,
              help="Platform fee fraction")
@click.option("--prediction-id", default=None, help="Prediction id (needed for --ops)")
@click.option("--ops", "show_ops", is_flag=True, help="Also print escrow operations")
def settle(stakes_file, winner, fee, prediction_id, show_ops):
    """Compute the settlement for a stakes file."""
    try:
        data = json.load(stakes_file)
    except ValueError as e:
        raise click.ClickException(f"Invalid stakes file: {e}")

    if isinstance(data, list):
        stakes, total_pool = data, None
    elif isinstance(data, dict):
        stakes, total_pool = data.get("stakes") or [], data.get("totalPool")
    else:
        raise click.ClickException("Stakes file must be a list or an object")

    if total_pool is None:
        total_pool = sum((to_decimal(s.get("amount")) for s in stakes), ZERO)

    result = calculate_settlement(stakes, winner, total_pool, fee)
    output = {"settlement": result.to_dict()}

    if show_ops:
        if not prediction_id:
            raise click.UsageError("--ops requires --prediction-id")
        config = EscrowConfig.from_env()
        payouts = build_payout_ops(
            [
                {"username": p.username, "amount": p.payout_amount, "prediction_id": prediction_id}
                for p in result.payouts
            ],
            config,
        )
        fees = build_fee_ops(result.platform_fee, prediction_id, config)
        output["operations"] = {
            "payouts": [op.to_dict() for op in payouts],
            "feeBurn": fees.burn.to_dict() if fees.burn else None,
            "feeReward": fees.reward.to_dict() if fees.reward else None,
        }

    click.echo(json.dumps(output, indent=2))


@main.command("sign-token")
@click.option("--prediction-id", required=True)
@click.option("--username", required=True)
@click.option("--outcome-id", required=True)
@click.option("--amount", type=float, required=True)
def sign_token(prediction_id, username, outcome_id, amount):
    """Issue a stake token using the configured secret."""
    if amount.is_integer():
        amount = int(amount)
    try:
        token = sign_stake_token(StakeTokenData(prediction_id, username, outcome_id, amount))
    except ConfigurationError as e:
        raise click.ClickException(str(e))
    click.echo(token)


@main.command("verify-token")
@click.argument("token")
def verify_token(token):
    """Verify a stake token and print its payload."""
    try:
        data = verify_stake_token(token)
    except ConfigurationError as e:
        raise click.ClickException(str(e))

    if data is None:
        click.echo("invalid", err=True)
        sys.exit(1)
    click.echo(json.dumps(data.to_payload(), indent=2))


if __name__ == "__main__":
    main()
