"""
Winning-Bid Selection

No discretion: the forced sale goes to the best fully funded bid under a
fixed, total ordering. Ranking is deterministic so every replica of the
event log reaches the same winner.
"""

from decaying_license.license.models import Bid


def eligible_bids(bids: list[Bid]) -> list[Bid]:
    """
    Bids whose escrow fully covers their self-assessed price

    An under-funded self-assessment cannot win a forced sale.
    """
    return [bid for bid in bids if bid.is_funded]


def rank_key(bid: Bid) -> tuple[int, int, int]:
    """
    Sort key, best first: highest price, then most shares, then earliest slot

    Shares break ties because the bidder who claimed the most decay has
    been queued longest.
    """
    return (-bid.price, -bid.shares, bid.bid_id)


def rank_bids(bids: list[Bid]) -> list[Bid]:
    """Eligible bids in winning order"""
    return sorted(eligible_bids(bids), key=rank_key)


def select_best_bid(bids: list[Bid]) -> Bid | None:
    """
    Select the winning bid

    Returns:
        The best eligible bid, or None when the pool is empty or every bid
        is under-funded (the license() caller may then win directly)

    Example:
        >>> bids = [
        ...     Bid(bid_id=0, bidder="carol", shares=300, price=200, deposit=200),
        ...     Bid(bid_id=1, bidder="dave", shares=500, price=200, deposit=200),
        ... ]
        >>> select_best_bid(bids).bidder
        'dave'
    """
    ranked = rank_bids(bids)
    return ranked[0] if ranked else None
