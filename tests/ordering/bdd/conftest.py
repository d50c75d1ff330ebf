"""Shared BDD fixtures and step definitions for seller fulfillment."""

import pytest
from ordering.exceptions import InvalidTransitionError
from pytest_bdd import given, parsers, then


@pytest.fixture()
def error():
    """Container for the error a When step captured."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('an order in "{status}" status'), target_fixture="order")
def _(order_at, status):
    return order_at(status)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order is in "{status}" status'))
def _(order, status):
    assert order.status == status


@then(parsers.cfparse('the order is still in "{status}" status'))
def _(order, status):
    assert order.status == status
    assert len(order.status_history) == 1


@then(parsers.cfparse('the move from "{source}" to "{target}" is rejected'))
def _(error, source, target):
    exc = error["exc"]
    assert isinstance(exc, InvalidTransitionError)
    assert (exc.from_status, exc.to_status) == (source, target)
