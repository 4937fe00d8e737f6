"""
Pytest configuration and fixtures for ROI driver tests.
"""

import pytest

from roi_drivers.domain.models import RecordSet


def _loan(weight, rate, **factors):
    return {"total_loan_amount": weight, "roi": rate, **factors}


def _nested_periods():
    """24 loans per period split evenly by tier (a/b) and channel (web/branch).

    Tier a reprices upward in the current period, web loans more than
    branch loans; tier b is flat.
    """
    previous = []
    current = []
    for tier in ("a", "b"):
        for channel in ("web", "branch"):
            for _ in range(6):
                previous.append(_loan(100, 0.10, tier=tier, channel=channel))
                if tier == "a":
                    current_rate = 0.16 if channel == "web" else 0.12
                else:
                    current_rate = 0.10
                current.append(_loan(100, current_rate, tier=tier, channel=channel))
    return previous, current


@pytest.fixture
def single_tier_periods():
    """One loan per period, same tier, rate moves 10% -> 12%."""
    previous = RecordSet.from_records([_loan(100, 0.10, tier="A")])
    current = RecordSet.from_records([_loan(100, 0.12, tier="A")])
    return previous, current


@pytest.fixture
def mix_shift_periods():
    """Flat rates with weight moving from tier B to tier A."""
    previous = RecordSet.from_records([_loan(50, 0.10, tier="A"), _loan(50, 0.10, tier="B")])
    current = RecordSet.from_records([_loan(80, 0.10, tier="A"), _loan(20, 0.10, tier="B")])
    return previous, current


@pytest.fixture
def nested_records():
    """Raw record lists for the nested tier/channel portfolio."""
    return _nested_periods()


@pytest.fixture
def nested_periods():
    previous, current = _nested_periods()
    return RecordSet.from_records(previous), RecordSet.from_records(current)


@pytest.fixture
def five_factor_periods():
    """Every combination of five binary factors, one loan each.

    Each factor lifts the current rate by its own step, so every unfixed
    factor keeps a nonzero impact variance in any segment.
    """
    steps = {"f1": 0.016, "f2": 0.008, "f3": 0.004, "f4": 0.002, "f5": 0.001}
    previous = []
    current = []
    for combo in range(32):
        factors = {name: (combo >> bit) & 1 for bit, name in enumerate(steps)}
        lift = sum(step for name, step in steps.items() if factors[name])
        labels = {name: f"{name}_{value}" for name, value in factors.items()}
        previous.append(_loan(100, 0.10, **labels))
        current.append(_loan(100, 0.10 + lift, **labels))
    return RecordSet.from_records(previous), RecordSet.from_records(current)


@pytest.fixture
def mixed_tier_portfolio():
    """Tier reads as numbers in the previous period but not in the current one."""

    def _rows(tiers, rate):
        return [
            {"Loan Amount": 100, "ROI": rate, "Tier": tier, "Channel": channel}
            for tier, channel in zip(tiers, ["Web", "Web", "Branch", "Branch"] * 3)
        ]

    return _rows(["1", "2"] * 6, 10.0), _rows(["1", "x"] * 6, 12.0)


@pytest.fixture
def raw_portfolio():
    """Upload-style rows: display headers, percentage rates, mixed-case text."""
    previous = []
    current = []
    index = 0
    for tier in ("A", "B"):
        for channel in ("Web", "Branch"):
            for _ in range(6):
                index += 1
                row = {
                    "Application ID": f"app-{index:03d}",
                    "Loan Amount": 100,
                    "ROI": 10.0,
                    "Tier": tier,
                    "Channel": channel,
                    "V Score": 12,
                }
                previous.append(row)
                current_rate = 10.0
                if tier == "A":
                    current_rate = 16.0 if channel == "Web" else 12.0
                current.append({**row, "Application ID": f"app-{index + 100:03d}", "ROI": current_rate})
    return previous, current
