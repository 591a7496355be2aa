BPS_DENOMINATOR = 10_000


def split_pot(wager: int, fee_bps: int):
    """Split the pot of an active match into ``(payout, fee)``.

    The fee is floored, so ``payout + fee == 2 * wager`` always holds.
    """
    pot = 2 * wager
    fee = pot * fee_bps // BPS_DENOMINATOR
    return pot - fee, fee
