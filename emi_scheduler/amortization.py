"""
Amortization Module

Splits a fixed installment into interest and principal against the current
outstanding balance. All financial math uses Decimal.
"""

from decimal import Decimal, ROUND_HALF_UP
from dataclasses import dataclass


CENT = Decimal('0.01')
MONTHS_PER_YEAR = Decimal('12')
HUNDRED = Decimal('100')


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class EMIBreakdown:
    """Principal/interest split of one installment"""
    principal_paid: Decimal
    interest_paid: Decimal
    new_outstanding: Decimal
    clamped: bool = False       # Principal was capped at the remaining balance

    @property
    def total(self) -> Decimal:
        return self.principal_paid + self.interest_paid

    @property
    def clears_balance(self) -> bool:
        return self.new_outstanding <= 0


class AmortizationEngine:
    """
    Interest-first allocation of a fixed EMI.

    Interest is one month at annual_rate / 12 on the outstanding balance,
    rounded half-up to the cent. The remainder of the installment is
    principal, capped at the outstanding balance on the final installment
    and floored at zero when the installment does not cover the interest.
    """

    def monthly_rate(self, annual_rate_percent) -> Decimal:
        return to_decimal(annual_rate_percent) / MONTHS_PER_YEAR / HUNDRED

    def split(self, outstanding_amount, annual_rate_percent, emi_amount) -> EMIBreakdown:
        outstanding = to_decimal(outstanding_amount)
        emi = to_decimal(emi_amount)

        if emi <= 0:
            raise ValueError("No EMI amount set for this loan")
        if outstanding < 0:
            raise ValueError(f"Outstanding amount cannot be negative: {outstanding}")
        if to_decimal(annual_rate_percent) < 0:
            raise ValueError(f"Interest rate cannot be negative: {annual_rate_percent}")

        interest = (outstanding * self.monthly_rate(annual_rate_percent)).quantize(CENT, rounding=ROUND_HALF_UP)
        principal = emi - interest
        clamped = False

        if principal > outstanding:
            # Final or overpaying installment
            principal = outstanding
            interest = emi - principal
            clamped = True
        elif principal < 0:
            principal = Decimal('0')
            interest = emi

        new_outstanding = max(Decimal('0'), outstanding - principal)
        return EMIBreakdown(
            principal_paid=principal,
            interest_paid=interest,
            new_outstanding=new_outstanding,
            clamped=clamped
        )
