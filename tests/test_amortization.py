"""
Tests for the installment principal/interest split

All financial math must be exact to the cent.
"""

import pytest
from decimal import Decimal

from emi_scheduler.amortization import AmortizationEngine


@pytest.fixture
def engine():
    return AmortizationEngine()


class TestSplit:

    def test_worked_example(self, engine):
        """1,00,000 at 12% with a 2,200 EMI"""
        breakdown = engine.split(Decimal('100000'), Decimal('12'), Decimal('2200'))

        assert breakdown.interest_paid == Decimal('1000.00')
        assert breakdown.principal_paid == Decimal('1200.00')
        assert breakdown.new_outstanding == Decimal('98800.00')
        assert not breakdown.clamped
        assert not breakdown.clears_balance

    def test_monthly_rate(self, engine):
        assert engine.monthly_rate(Decimal('12')) == Decimal('0.01')
        assert engine.monthly_rate(Decimal('0')) == Decimal('0')

    def test_interest_rounded_half_up(self, engine):
        # 12345.67 * 0.0075 = 92.592525
        breakdown = engine.split(Decimal('12345.67'), Decimal('9'), Decimal('500'))
        assert breakdown.interest_paid == Decimal('92.59')
        assert breakdown.principal_paid == Decimal('407.41')

    @pytest.mark.parametrize("outstanding,rate,emi", [
        ("100000", "12", "2200"),
        ("250000.50", "8.75", "5123.45"),
        ("1500", "0", "300"),
        ("99999.99", "36", "4000"),
        ("10", "10.5", "9.99"),
    ])
    def test_split_conserves_emi(self, engine, outstanding, rate, emi):
        breakdown = engine.split(Decimal(outstanding), Decimal(rate), Decimal(emi))
        assert breakdown.principal_paid + breakdown.interest_paid == Decimal(emi)
        assert breakdown.interest_paid >= 0
        assert breakdown.principal_paid >= 0

    def test_zero_rate_is_all_principal(self, engine):
        breakdown = engine.split(Decimal('1500'), Decimal('0'), Decimal('300'))
        assert breakdown.interest_paid == Decimal('0.00')
        assert breakdown.principal_paid == Decimal('300')
        assert breakdown.new_outstanding == Decimal('1200')


class TestClamping:

    def test_final_installment_clamped_to_outstanding(self, engine):
        breakdown = engine.split(Decimal('500'), Decimal('12'), Decimal('2200'))

        assert breakdown.clamped
        assert breakdown.principal_paid == Decimal('500')
        assert breakdown.interest_paid == Decimal('1700')
        assert breakdown.total == Decimal('2200')
        assert breakdown.new_outstanding == Decimal('0')
        assert breakdown.clears_balance

    def test_exact_payoff_not_clamped(self, engine):
        # 1000 at 12%: interest 10.00, principal 1000.00
        breakdown = engine.split(Decimal('1000'), Decimal('12'), Decimal('1010'))
        assert not breakdown.clamped
        assert breakdown.principal_paid == Decimal('1000.00')
        assert breakdown.clears_balance

    def test_installment_below_interest(self, engine):
        # Interest 1000 exceeds the 800 installment
        breakdown = engine.split(Decimal('100000'), Decimal('12'), Decimal('800'))
        assert breakdown.principal_paid == Decimal('0')
        assert breakdown.interest_paid == Decimal('800')
        assert breakdown.new_outstanding == Decimal('100000')


class TestValidation:

    @pytest.mark.parametrize("emi", ["0", "-10"])
    def test_emi_must_be_positive(self, engine, emi):
        with pytest.raises(ValueError, match="No EMI amount"):
            engine.split(Decimal('1000'), Decimal('12'), Decimal(emi))

    def test_negative_rate_rejected(self, engine):
        with pytest.raises(ValueError, match="Interest rate"):
            engine.split(Decimal('1000'), Decimal('-1'), Decimal('100'))

    def test_accepts_plain_numbers(self, engine):
        breakdown = engine.split(100000, 12, 2200)
        assert breakdown.principal_paid == Decimal('1200.00')
