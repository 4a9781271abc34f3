"""Baseline economic recompute applied to one state per pass.

The game's real formulas (event effects, GDP curves) plug in through the
``recompute`` argument of :class:`~simnations.jobs.economic_update.EconomicBatchExecutor`;
this module only compounds the growth and inflation rates already stored
on the state over the time elapsed since its last update.
"""

from datetime import datetime, timedelta
from numbers import Real
from typing import Any

from simnations.economy.errors import ItemRecomputeError
from simnations.model.simulated_state import SimulatedState

DAYS_PER_YEAR = 365.0
DEFAULT_ELAPSED = timedelta(days=1)
# A state untouched for longer than this is caught up by at most one year.
MAX_ELAPSED = timedelta(days=365)


def _number(state: SimulatedState, name: str, default: Any = None) -> float:
    value = state.attributes.get(name, default)
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ItemRecomputeError(state.state_id, f"attribute '{name}' is not numeric: {value!r}")
    return float(value)


def recompute_economy(state: SimulatedState, now: datetime) -> SimulatedState:
    """Advance ``state``'s economy to ``now`` in place and return it.

    :param state: State whose ``attributes`` are updated.
    :param now: Aware UTC timestamp of the pass.
    :return: The same ``state`` instance.
    :raises ItemRecomputeError: If an attribute is missing, non-numeric or negative.
    """
    gdp = _number(state, "gdp")
    if gdp < 0:
        raise ItemRecomputeError(state.state_id, f"gdp must not be negative: {gdp}")
    growth = _number(state, "gdp_growth_rate", 0.0)
    inflation = _number(state, "inflation_rate", 0.0)
    price_index = _number(state, "price_index", 100.0)
    if growth <= -1.0 or inflation <= -1.0:
        raise ItemRecomputeError(state.state_id, f"rates must be > -1 (growth={growth}, inflation={inflation})")

    if state.last_economic_update is None:
        elapsed = DEFAULT_ELAPSED
    else:
        elapsed = min(max(now - state.last_economic_update, timedelta(0)), MAX_ELAPSED)
    years = elapsed.total_seconds() / 86400.0 / DAYS_PER_YEAR

    try:
        state.attributes["gdp"] = round(gdp * (1.0 + growth) ** years, 2)
        state.attributes["price_index"] = round(price_index * (1.0 + inflation) ** years, 4)
    except (OverflowError, ValueError, ZeroDivisionError) as exc:
        raise ItemRecomputeError(state.state_id, f"economic model diverged: {exc}", cause=exc) from exc
    state.last_economic_update = now
    return state
