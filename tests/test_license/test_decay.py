"""
Tests for the decay calculator

Everything here is a pure function of terms, record and time, so the
reference scenario numbers can be checked directly.
"""

from decaying_license.kernel.policy import SECONDS_PER_YEAR, LicensePolicy
from decaying_license.license.decay import (
    get_decayed_shares,
    is_fully_decayed,
    license_state,
    patronage_owed,
    use_cycle_elapsed,
)
from decaying_license.license.models import LicenseState
from tests.helpers import (
    FULL_DECAY_AT,
    PERIOD,
    PRICE,
    USE_CYCLE_END,
    at,
    make_record,
    make_terms,
)


def test_unlicensed_has_no_decay_or_patronage() -> None:
    terms = make_terms()
    assert get_decayed_shares(terms, None, at(10_000)) == 0
    assert patronage_owed(terms, None, at(10_000)) == 0
    assert not is_fully_decayed(terms, None, at(10**9))


def test_decayed_shares_reference_value() -> None:
    terms = make_terms()
    record = make_record(licensed_at=0)

    assert get_decayed_shares(terms, record, at(0)) == 0
    assert get_decayed_shares(terms, record, at(10_000)) == 10_000 * 2 * 10_000 // PERIOD
    assert get_decayed_shares(terms, record, at(10_000)) == 330


def test_decayed_shares_not_clamped() -> None:
    terms = make_terms()
    record = make_record(licensed_at=0)

    assert get_decayed_shares(terms, record, at(FULL_DECAY_AT)) == 10_000
    assert get_decayed_shares(terms, record, at(2 * FULL_DECAY_AT)) == 20_000


def test_decayed_shares_monotone_in_time() -> None:
    terms = make_terms()
    record = make_record(licensed_at=1_000)

    values = [get_decayed_shares(terms, record, at(t)) for t in range(0, 400_000, 7_919)]
    assert values == sorted(values)


def test_zero_rate_never_decays() -> None:
    terms = make_terms(rate=0)
    record = make_record()
    assert get_decayed_shares(terms, record, at(10 * PERIOD)) == 0


def test_licensed_at_epoch_is_a_real_license() -> None:
    """A record at timestamp 0 is licensed, not a sentinel"""
    terms = make_terms()
    record = make_record(licensed_at=0)
    assert license_state(terms, record, at(0)) == LicenseState.IN_USE_CYCLE


def test_patronage_owed_reference_value() -> None:
    terms = make_terms()
    record = make_record(licensed_at=0)

    owed = patronage_owed(terms, record, at(10_000))
    assert owed == PRICE * 10_000 // PERIOD
    assert owed == 16_534


def test_patronage_counts_from_last_collection() -> None:
    terms = make_terms()
    record = make_record(licensed_at=0, collected_at=10_000)

    assert patronage_owed(terms, record, at(10_000)) == 0
    assert patronage_owed(terms, record, at(20_000)) == 16_534


def test_patronage_year_basis() -> None:
    terms = make_terms(rate=500, period=PERIOD)
    record = make_record(price=1_000_000, licensed_at=0)

    # 5% of the price per year
    assert patronage_owed(terms, record, at(SECONDS_PER_YEAR), basis="year") == 50_000
    assert patronage_owed(terms, record, at(SECONDS_PER_YEAR // 2), basis="year") == 25_000


def test_use_cycle_boundary() -> None:
    terms = make_terms()
    record = make_record(licensed_at=0)

    assert not use_cycle_elapsed(terms, record, at(USE_CYCLE_END))
    assert use_cycle_elapsed(terms, record, at(USE_CYCLE_END + 1))


def test_license_state_full_decay_policy() -> None:
    terms = make_terms()
    record = make_record(licensed_at=0)

    assert license_state(terms, None, at(0)) == LicenseState.UNLICENSED
    assert license_state(terms, record, at(USE_CYCLE_END)) == LicenseState.IN_USE_CYCLE
    assert license_state(terms, record, at(USE_CYCLE_END + 1)) == LicenseState.DECAYING
    assert license_state(terms, record, at(FULL_DECAY_AT)) == LicenseState.READY


def test_license_state_use_cycle_policy() -> None:
    terms = make_terms()
    record = make_record(licensed_at=0)
    policy = LicensePolicy(resale_threshold="use_cycle")

    assert license_state(terms, record, at(USE_CYCLE_END), policy) == LicenseState.IN_USE_CYCLE
    assert license_state(terms, record, at(USE_CYCLE_END + 1), policy) == LicenseState.READY
