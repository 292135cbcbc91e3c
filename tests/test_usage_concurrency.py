"""Concurrent submissions against usage-limited credentials.

Every verification runs on its own session while sharing the in-memory rows,
so reads interleave the way concurrent request handlers would and only the
compare-and-swap decides who consumes a use.
"""

import asyncio
import random

import pytest

from app.services import verification
from conftest import FakeAsyncSession, access_logs, make_access_code, make_intercom, make_temporary_pin, usages


async def _submit(intercom, secret: str, delay_ticks: int = 0):
    for _ in range(delay_ticks):
        await asyncio.sleep(0)
    db = FakeAsyncSession().register(intercom)
    result = await verification.verify(db, intercom.id, secret)
    return result, db


async def _burst(intercom, secret: str, count: int, seed: int | None = None):
    rng = random.Random(seed)
    delays = [rng.randint(0, 4) if seed is not None else 0 for _ in range(count)]
    return await asyncio.gather(*(_submit(intercom, secret, ticks) for ticks in delays))


@pytest.mark.asyncio
async def test_last_remaining_use_goes_to_exactly_one_caller(credentials):
    intercom = make_intercom(id=7)
    pin = make_temporary_pin(secret="2468", max_uses=1)
    credentials.add(pin)

    outcomes = await _burst(intercom, "2468", 2)

    assert sum(result.success for result, _ in outcomes) == 1
    assert pin.uses_count == 1


@pytest.mark.asyncio
async def test_one_retry_absorbs_a_single_collision(credentials):
    intercom = make_intercom(id=7)
    pin = make_temporary_pin(secret="2468", max_uses=2)
    credentials.add(pin)

    outcomes = await _burst(intercom, "2468", 2)

    assert all(result.success for result, _ in outcomes)
    assert pin.uses_count == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("seed", [None, 1, 2, 3, 4, 5])
async def test_uses_never_exceed_max_under_any_interleaving(credentials, seed):
    intercom = make_intercom(id=7)
    pin = make_temporary_pin(secret="2468", max_uses=3)
    credentials.add(pin)

    outcomes = await _burst(intercom, "2468", 10, seed)
    successes = sum(result.success for result, _ in outcomes)

    assert 1 <= successes <= 3
    assert pin.uses_count == successes
    assert sum(len(usages(db)) for _, db in outcomes) == successes
    for result, db in outcomes:
        [row] = access_logs(db)
        assert row.is_success is result.success

    # Collisions fail closed; later sequential submissions use up what is left.
    later = [await _submit(intercom, "2468") for _ in range(5)]
    assert successes + sum(result.success for result, _ in later) == 3
    assert pin.uses_count == 3


@pytest.mark.asyncio
@pytest.mark.parametrize("seed", [None, 7, 8])
async def test_single_use_code_opens_once_under_concurrency(credentials, seed):
    intercom = make_intercom(id=7)
    code = make_access_code(secret="ONCE-9", is_single_use=True)
    credentials.add(code)

    outcomes = await _burst(intercom, "ONCE-9", 5, seed)

    assert sum(result.success for result, _ in outcomes) == 1
    assert code.is_active is False
    assert sum(len(access_logs(db)) for _, db in outcomes) == 5
