"""
Extraction policy.

Pure functions deciding whether a market is due for extraction and how
much to extract. No I/O, no state: everything comes in as arguments.

Arithmetic is checked uint256 arithmetic. A negative difference raises
ArithmeticUnderflowError instead of clamping to zero.
"""

from .constants import COOLDOWN_PERIOD, RATIO_DENOMINATOR, UINT256_MAX
from .errors import ArithmeticOverflowError, ArithmeticUnderflowError
from .types import Checkpoint, DecisionKind, ExtractionDecision


def checked_sub(a: int, b: int) -> int:
    """a - b, raising on underflow."""
    if b > a:
        raise ArithmeticUnderflowError(f"{a} - {b} underflows")
    return a - b


def checked_mul(a: int, b: int) -> int:
    """a * b, raising on uint256 overflow."""
    result = a * b
    if result > UINT256_MAX:
        raise ArithmeticOverflowError(f"{a} * {b} overflows uint256")
    return result


def cooldown_elapsed(checkpoint: Checkpoint, now: int, period: int = COOLDOWN_PERIOD) -> bool:
    """True once checkpoint.timestamp + period <= now."""
    return checkpoint.timestamp + period <= now


def extraction_amount(live_total_reserves: int, checkpoint: Checkpoint, ratio: int) -> int:
    """
    Amount to extract for the reserves delta.

    (live - checkpoint) * ratio / RATIO_DENOMINATOR, floored.
    """
    delta = checked_sub(live_total_reserves, checkpoint.total_reserves)
    return checked_mul(delta, ratio) // RATIO_DENOMINATOR


def decide(
    checkpoint: Checkpoint,
    live_total_reserves: int,
    ratio: int,
    cooldown_ok: bool,
) -> ExtractionDecision:
    """
    Decide whether to extract from a market.

    The extraction branch is taken when live reserves are less than or
    equal to the checkpointed reserves. Equal reserves extract exactly 0;
    lower reserves underflow and raise.

    Args:
        checkpoint: Stored checkpoint for the market
        live_total_reserves: Reserves read from the market now
        ratio: Extraction ratio numerator over RATIO_DENOMINATOR
        cooldown_ok: Result of cooldown_elapsed() for this checkpoint

    Returns:
        ExtractionDecision (SKIP or EXTRACT with amount)
    """
    if live_total_reserves < 0 or live_total_reserves > UINT256_MAX:
        raise ArithmeticOverflowError(f"reserves {live_total_reserves} out of uint256 range")

    if live_total_reserves <= checkpoint.total_reserves:
        amount = extraction_amount(live_total_reserves, checkpoint, ratio)
        return ExtractionDecision(
            kind=DecisionKind.EXTRACT,
            amount=amount,
            live_total_reserves=live_total_reserves,
            checkpoint=checkpoint,
            cooldown_ok=cooldown_ok,
        )

    return ExtractionDecision(
        kind=DecisionKind.SKIP,
        amount=0,
        live_total_reserves=live_total_reserves,
        checkpoint=checkpoint,
        cooldown_ok=cooldown_ok,
    )
