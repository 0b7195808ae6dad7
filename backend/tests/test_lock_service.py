import asyncio

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clictools.db.base import Base
from clictools.db.session import build_engine
from clictools.models.audit import AuditLog
from clictools.models.location import Location, LocationType
from clictools.services.audit_service import ACTION_LOCK_FORCE_RELEASED
from clictools.services.location_service import LocationNotFoundError, LocationService
from clictools.services.lock_service import LockService


async def _lock_state(db, ids):
    rows = await LocationService.get_by_ids(db, ids)
    return {r.id: (r.is_locked, r.locked_by, r.locked_by_user_id) for r in rows}


async def test_lock_entity_locks_every_id(db, warehouse):
    result = await LockService.lock_entity(db, [warehouse.l1, warehouse.l2], "alice", warehouse.alice_id)
    assert result.locked is False
    assert result.conflicts == []

    state = await _lock_state(db, [warehouse.l1, warehouse.l2])
    assert state == {
        warehouse.l1: (True, "alice", warehouse.alice_id),
        warehouse.l2: (True, "alice", warehouse.alice_id),
    }


async def test_overlapping_request_is_denied_without_side_effects(db, warehouse):
    await LockService.lock_entity(db, [warehouse.l1, warehouse.l2], "alice", warehouse.alice_id)
    await db.commit()
    before = await _lock_state(db, [warehouse.l1, warehouse.l2, warehouse.l3])

    result = await LockService.lock_entity(db, [warehouse.l2, warehouse.l3], "bob", warehouse.bob_id)

    assert result.locked is True
    assert [c.id for c in result.conflicts] == [warehouse.l2]
    assert result.conflicts[0].locked_by == "alice"
    assert await _lock_state(db, [warehouse.l1, warehouse.l2, warehouse.l3]) == before
    assert before[warehouse.l3] == (False, None, None)


async def test_relocking_own_levels_is_not_a_conflict(db, warehouse):
    await LockService.lock_entity(db, [warehouse.l1], "alice", warehouse.alice_id)
    result = await LockService.lock_entity(db, [warehouse.l1, warehouse.l3], "alice", warehouse.alice_id)
    assert result.locked is False
    assert (await _lock_state(db, [warehouse.l3]))[warehouse.l3][0] is True


async def test_locks_without_user_id_compare_by_name(db, warehouse):
    await LockService.lock_entity(db, [warehouse.l1], "alice")
    assert (await LockService.lock_entity(db, [warehouse.l1], "alice")).locked is False
    assert (await LockService.lock_entity(db, [warehouse.l1], "bob")).locked is True


async def test_lock_entity_rejects_empty_and_unknown_ids(db, warehouse):
    with pytest.raises(ValueError):
        await LockService.lock_entity(db, [], "alice", warehouse.alice_id)

    with pytest.raises(LocationNotFoundError) as exc_info:
        await LockService.lock_entity(db, [warehouse.l1, 9999], "alice", warehouse.alice_id)
    assert exc_info.value.missing == [9999]
    assert (await _lock_state(db, [warehouse.l1]))[warehouse.l1][0] is False


async def test_release_lock_twice_is_idempotent(db, warehouse):
    ids = [warehouse.l1, warehouse.l2]
    await LockService.lock_entity(db, ids, "alice", warehouse.alice_id)

    await LockService.release_lock(db, ids)
    once = await _lock_state(db, ids)
    await LockService.release_lock(db, ids)
    twice = await _lock_state(db, ids)

    assert once == twice == {i: (False, None, None) for i in ids}
    await LockService.release_lock(db, [])


async def test_get_active_locks(db, warehouse):
    assert await LockService.get_active_locks(db) == []
    await LockService.lock_entity(db, [warehouse.l3], "bob", warehouse.bob_id)
    await LockService.lock_entity(db, [warehouse.l1], "alice", warehouse.alice_id)
    active = await LockService.get_active_locks(db)
    assert {l.id for l in active} == {warehouse.l1, warehouse.l3}


async def test_force_release_lock_is_audited(db, warehouse):
    await LockService.lock_entity(db, [warehouse.l1], "alice", warehouse.alice_id)

    assert await LockService.force_release_lock(db, warehouse.l1, actor_id=warehouse.admin_id) is True
    assert await LockService.force_release_lock(db, 9999, actor_id=warehouse.admin_id) is False
    await db.flush()

    assert (await _lock_state(db, [warehouse.l1]))[warehouse.l1] == (False, None, None)
    entries = (await db.execute(select(AuditLog).where(AuditLog.action == ACTION_LOCK_FORCE_RELEASED))).scalars().all()
    assert len(entries) == 1
    assert entries[0].target_id == str(warehouse.l1)
    assert entries[0].payload["previous_holder"] == "alice"

    # now free for someone else
    assert (await LockService.lock_entity(db, [warehouse.l1], "bob", warehouse.bob_id)).locked is False


async def test_concurrent_overlapping_requests_have_one_winner(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'locks.db'}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with maker() as s:
            rows = [Location(name=f"Nivel {i}", code=f"N{i}", location_type=LocationType.SHELF) for i in (1, 2, 3)]
            s.add_all(rows)
            await s.commit()
            n1, n2, n3 = (r.id for r in rows)

        async def attempt(ids, name, user_id):
            async with maker() as s:
                result = await LockService.lock_entity(s, ids, name, user_id)
                await s.commit()
                return result

        alice, bob = await asyncio.gather(attempt([n1, n2], "alice", 1), attempt([n2, n3], "bob", 2))

        async with maker() as s:
            holders = {l.id: l.locked_by for l in await LocationService.get_by_ids(s, [n1, n2, n3])}
    finally:
        await engine.dispose()

    assert sorted([alice.locked, bob.locked]) == [False, True]
    if alice.locked:
        assert holders == {n1: None, n2: "bob", n3: "bob"}
    else:
        assert holders == {n1: "alice", n2: "alice", n3: None}
