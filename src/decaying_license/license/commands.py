"""
License Module Commands - Intentions to change license state

Each public engine operation becomes one of these. Field constraints here
only catch malformed input; the economic rules (floors, escrow math,
lifecycle gates) live in invariants and are checked against current state.
"""

from pydantic import BaseModel, Field


class DraftTerms(BaseModel):
    """
    Create terms (license_id None or 0) or redraft them

    On a redraft, zero or empty fields keep their prior values.
    """

    license_id: int | None = Field(default=None, ge=0)
    price: int = Field(default=0, ge=0)
    rate: int = 0
    period: int = 0
    content: str = ""


class SubmitBid(BaseModel):
    """
    Claim the decayed, unclaimed share of a license

    value must equal the exact escrow change the bid requires.
    """

    license_id: int = Field(..., ge=1)
    price: int = Field(..., ge=0)
    value: int = Field(default=0, ge=0)


class AddDeposit(BaseModel):
    """Top up a bid's escrow (bid_id given) or the licensee's buffer"""

    license_id: int = Field(..., ge=1)
    value: int
    bid_id: int | None = None


class AcquireLicense(BaseModel):
    """
    Take an unlicensed license directly, or trigger the forced resale of a
    held one
    """

    license_id: int = Field(..., ge=1)
    price: int = Field(..., ge=0)
    value: int = Field(default=0, ge=0)


class CollectPatronage(BaseModel):
    """Licensor collects patronage accrued since the last collection"""

    license_id: int = Field(..., ge=1)
