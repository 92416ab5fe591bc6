"""Unit tests for flat-rate withdrawal taxes."""

import math

from retirement_runway.calculators import taxes as tax_calc
from retirement_runway.scenario import TaxConfig


def test_gross_up_tax_deferred_example():
    """Netting $4,000 at 22% needs a gross withdrawal of about $5,128.21."""
    w = tax_calc.gross_withdrawal(4000, 0.22)
    assert math.isclose(w.gross, 5128.21, abs_tol=0.01)
    assert math.isclose(w.tax, 1128.21, abs_tol=0.01)
    assert w.net == 4000


def test_zero_rate_is_exactly_untaxed():
    w = tax_calc.gross_withdrawal(1500, 0.0)
    assert w.gross == 1500
    assert w.tax == 0.0
    assert w.rate == 0.0


def test_tax_on_partial_withdrawal():
    """Taxing a fixed gross amount leaves gross * (1 - rate) to spend."""
    w = tax_calc.tax_on_withdrawal(1000, 0.15)
    assert math.isclose(w.net, 850.0)
    assert math.isclose(w.tax, 150.0)


def test_default_rates_by_treatment():
    cfg = TaxConfig()
    assert cfg.rate_for("tax_deferred") == 0.22
    assert cfg.rate_for("taxable") == 0.15
    assert cfg.rate_for("tax_free") == 0.0

