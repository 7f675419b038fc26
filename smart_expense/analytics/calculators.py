"""
Planning Calculators

Stand-alone what-if tools: savings growth with monthly compounding and
fixed-rate loan amortization. They don't read the ledger.
"""

from smart_expense.errors import ValidationError
from smart_expense.models.insights import CompoundInterestResult, LoanQuote
from smart_expense.models.ledger import ValidationIssue


def _require(condition: bool, field: str, message: str) -> None:
    if not condition:
        raise ValidationError(
            message,
            [ValidationIssue(field=field, issue_type="invalid_value", message=message)],
        )


def compound_interest(
    principal: float,
    annual_rate_pct: float,
    years: int,
    monthly_contribution: float = 0.0,
) -> CompoundInterestResult:
    """
    Grow `principal` monthly at `annual_rate_pct / 12`, adding
    `monthly_contribution` after each month's interest.
    """
    _require(principal >= 0, "principal", "Principal cannot be negative")
    _require(years >= 0, "years", "Years cannot be negative")
    _require(monthly_contribution >= 0, "monthly_contribution",
             "Monthly contribution cannot be negative")

    monthly_rate = annual_rate_pct / 100 / 12
    months = years * 12

    total = principal
    for _ in range(months):
        total = total * (1 + monthly_rate) + monthly_contribution

    invested = principal + monthly_contribution * months
    return CompoundInterestResult(
        future_value=total,
        total_invested=invested,
        interest_earned=total - invested,
    )


def loan_payment(
    amount: float,
    annual_rate_pct: float,
    months: int,
) -> LoanQuote:
    """
    Monthly payment for a fixed-rate amortized loan.

    A zero rate amortizes linearly.

    Raises:
        ValidationError: If `months` is not positive or `amount` is negative
    """
    _require(months > 0, "months", "Loan term must be at least one month")
    _require(amount >= 0, "amount", "Loan amount cannot be negative")

    monthly_rate = annual_rate_pct / 100 / 12
    if monthly_rate == 0:
        payment = amount / months
    else:
        payment = (amount * monthly_rate) / (1 - (1 + monthly_rate) ** -months)

    total = payment * months
    return LoanQuote(
        monthly_payment=payment,
        total_repayment=total,
        total_interest=total - amount,
    )
