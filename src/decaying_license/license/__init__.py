"""
License Module - Terms, decay, bids and forced resale

This module implements the allocation mechanics:
- Licensor-drafted terms with a price floor and a linear decay schedule
- Continuous decay of the license back toward the licensor
- Bids that escrow value against the decayed share
- Forced resale to the best funded bid, with patronage settlement

Fun fact: Harberger's tax is sometimes called COST - a Common Ownership
Self-assessed Tax - because the self-assessed price is also a standing offer
to sell.
"""

from decaying_license.license.commands import (
    AcquireLicense,
    AddDeposit,
    CollectPatronage,
    DraftTerms,
    SubmitBid,
)
from decaying_license.license.models import (
    Bid,
    LicenseEntry,
    LicenseState,
    Record,
    Terms,
    Transfer,
    TransferReason,
)

__all__ = [
    # Models
    "Terms",
    "Bid",
    "Record",
    "LicenseEntry",
    "LicenseState",
    "Transfer",
    "TransferReason",
    # Commands
    "DraftTerms",
    "SubmitBid",
    "AddDeposit",
    "AcquireLicense",
    "CollectPatronage",
]
