"""
License Policy - mechanism parameters shared by every license

Several iterations of the decaying license design disagree on when a forced
resale becomes eligible and how patronage accrues. The policy names each
choice explicitly instead of hiding it in the handlers.
"""

from typing import Literal

from pydantic import BaseModel, Field

BPS = 10_000
SECONDS_PER_YEAR = 365 * 24 * 60 * 60


class LicensePolicy(BaseModel):
    """
    Mechanism parameters

    Defaults describe the full-decay, per-period, refund-by-deposit variant.
    """

    policy_version: str = Field(
        default="1.0",
        description="Policy version for tracking changes over time",
    )

    max_bids: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Capacity of the bid table per license",
    )

    use_cycle_divisor: int = Field(
        default=3,
        ge=1,
        description="Protected use cycle is period // use_cycle_divisor seconds",
    )

    resale_threshold: Literal["full_decay", "use_cycle"] = Field(
        default="full_decay",
        description=(
            "full_decay: resale needs 10000 bps of decay; "
            "use_cycle: resale opens as soon as the use cycle has elapsed"
        ),
    )

    patronage_basis: Literal["period", "year"] = Field(
        default="period",
        description=(
            "period: price * elapsed / period; "
            "year: price * rate/10000 * elapsed / one year"
        ),
    )

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "description": "Decaying license mechanism parameters"
        },
    }

    def use_cycle_seconds(self, period: int) -> int:
        """Length of the protected use cycle for a given period"""
        return period // self.use_cycle_divisor


# Default global policy instance
default_license_policy = LicensePolicy()
