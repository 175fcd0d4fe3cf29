"""Tests for fraud score bucketing."""
import pytest

from liquidapp.models.base import FraudLevelEnum
from liquidapp.modules.fraud_level import classify_fraud_level, resolve_fraud_level


@pytest.mark.parametrize("score,expected", [
    (0.0, FraudLevelEnum.LOW),
    (0.24, FraudLevelEnum.LOW),
    (0.25, FraudLevelEnum.MEDIUM),
    (0.49, FraudLevelEnum.MEDIUM),
    (0.5, FraudLevelEnum.HIGH),
    (0.74, FraudLevelEnum.HIGH),
    (0.75, FraudLevelEnum.CRITICAL),
    (1.0, FraudLevelEnum.CRITICAL),
])
def test_bucket_boundaries(score, expected):
    assert classify_fraud_level(score) == expected


def test_explicit_level_wins_over_score():
    assert resolve_fraud_level(FraudLevelEnum.LOW, 0.9) == FraudLevelEnum.LOW


def test_missing_level_is_computed():
    assert resolve_fraud_level(None, 0.6) == FraudLevelEnum.HIGH
