"""Flat-rate withdrawal taxes.

Every tax treatment carries a single flat rate (see
:class:`~retirement_runway.scenario.TaxConfig`).  Two directions are needed by
the projection engine: *grossing up* a net spending need into the pre-tax
amount to withdraw, and taxing a gross amount that an account can only
partially cover.  This is an approximation; no brackets, deductions or state
taxes are modelled.

Example
-------

>>> w = gross_withdrawal(4000, 0.22)
>>> round(w.gross, 2), round(w.tax, 2)
(5128.21, 1128.21)
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TaxedAmount:
    gross: float
    net: float
    tax: float
    rate: float


def gross_withdrawal(net: float, rate: float) -> TaxedAmount:
    """Pre-tax amount needed so that ``net`` remains after tax at ``rate``.

    Parameters
    ----------
    net : float
        After-tax amount required.
    rate : float
        Flat tax rate in ``[0, 1)``.

    Returns
    -------
    TaxedAmount
        ``gross = net / (1 - rate)`` and ``tax = gross - net``.  A zero rate
        returns the net amount unchanged with a rate of exactly ``0.0``.
    """
    if rate == 0:
        return TaxedAmount(gross=net, net=net, tax=0.0, rate=0.0)
    gross = net / (1.0 - rate)
    return TaxedAmount(gross=gross, net=net, tax=gross - net, rate=rate)


def tax_on_withdrawal(gross: float, rate: float) -> TaxedAmount:
    """Tax a gross withdrawal at ``rate``; ``net = gross * (1 - rate)``."""
    if rate == 0:
        return TaxedAmount(gross=gross, net=gross, tax=0.0, rate=0.0)
    net = gross * (1.0 - rate)
    return TaxedAmount(gross=gross, net=net, tax=gross - net, rate=rate)

