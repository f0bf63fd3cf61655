"""
Circuit breaker state transition tests.
"""

import pytest

from app.core.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError, CircuitState


async def _fail():
    raise ConnectionError("down")


async def _ok():
    return "ok"


@pytest.mark.asyncio
async def test_opens_after_threshold():
    """Consecutive failures open the circuit."""
    breaker = CircuitBreaker("svc", failure_threshold=2, timeout_seconds=60)

    for _ in range(2):
        with pytest.raises(ConnectionError):
            await breaker.call(_fail)

    assert breaker.get_state() == CircuitState.OPEN
    with pytest.raises(CircuitBreakerOpenError):
        await breaker.call(_ok)


@pytest.mark.asyncio
async def test_half_open_closes_after_successes():
    """After the timeout, enough successes close the circuit again."""
    breaker = CircuitBreaker(
        "svc", failure_threshold=1, timeout_seconds=0.5, half_open_max_calls=2
    )

    with pytest.raises(ConnectionError):
        await breaker.call(_fail)
    assert breaker.get_state() == CircuitState.OPEN
    breaker.last_failure_time -= 1

    assert await breaker.call(_ok) == "ok"
    assert breaker.get_state() == CircuitState.HALF_OPEN
    assert await breaker.call(_ok) == "ok"
    assert breaker.get_state() == CircuitState.CLOSED


@pytest.mark.asyncio
async def test_success_resets_failure_count():
    """A success in the closed state clears earlier failures."""
    breaker = CircuitBreaker("svc", failure_threshold=2)

    with pytest.raises(ConnectionError):
        await breaker.call(_fail)
    await breaker.call(_ok)
    with pytest.raises(ConnectionError):
        await breaker.call(_fail)

    assert breaker.get_state() == CircuitState.CLOSED
