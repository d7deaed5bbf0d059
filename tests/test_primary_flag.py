"""Exclusive primary flag: invariants, ownership, deletion and concurrent promotion."""
import threading
from datetime import datetime

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from app.promptdesk.models import AuditEvent
from app.promptdesk.modules.companies.models import Company
from app.promptdesk.modules.competitors.models import Competitor
from app.promptdesk.modules.primary_flag.repository import OwnedEntityRepository, is_conflict_error
from app.promptdesk.modules.primary_flag.results import FlagError
from app.promptdesk.modules.primary_flag.service import count_primary, create_owned, delete_owned, set_primary

OWNER = "1"
OTHER = "2"
T0 = datetime(2026, 1, 1, 9, 0, 0)
T1 = datetime(2026, 1, 2, 9, 0, 0)


@pytest.fixture()
def session_factory(app):
    return app.extensions["sqlalchemy_sessionmaker"]


def _create(sf, owner_id, name, primary=False, model=Company):
    s = sf()
    try:
        result = create_owned(s, model, owner_id, {"name": name}, primary, now=T0)
        assert result.ok
        return result.entity_id
    finally:
        s.close()


def _flags(sf, owner_id, model=Company):
    s = sf()
    try:
        rows = s.query(model).filter(model.owner_id == owner_id).all()
        return {r.id: r.is_primary for r in rows}
    finally:
        s.close()


def _count(sf, owner_id, model=Company):
    s = sf()
    try:
        return count_primary(s, model, owner_id)
    finally:
        s.close()


def test_create_is_not_primary_unless_requested(session_factory):
    a = _create(session_factory, OWNER, "Acme")
    assert _flags(session_factory, OWNER) == {a: False}
    assert _count(session_factory, OWNER) == 0


def test_create_primary_clears_existing_primary(session_factory):
    a = _create(session_factory, OWNER, "Acme", primary=True)
    b = _create(session_factory, OWNER, "Beta", primary=True)
    assert _flags(session_factory, OWNER) == {a: False, b: True}


def test_promote_moves_flag_and_refreshes_changed_rows_only(session_factory):
    a = _create(session_factory, OWNER, "Acme", primary=True)
    b = _create(session_factory, OWNER, "Beta")
    c = _create(session_factory, OWNER, "Gamma")

    s = session_factory()
    result = set_primary(s, Company, OWNER, b, True, now=T1)
    s.close()

    assert result.ok
    assert result.entity_id == b
    assert result.is_primary is True

    s = session_factory()
    rows = {r.id: r for r in s.query(Company).all()}
    assert rows[a].is_primary is False
    assert rows[b].is_primary is True
    assert rows[c].is_primary is False
    assert rows[a].updated_at == T1
    assert rows[b].updated_at == T1
    assert rows[c].updated_at == T0
    s.close()


def test_promote_leaves_other_owners_untouched(session_factory):
    theirs = _create(session_factory, OTHER, "Their Co", primary=True)
    a = _create(session_factory, OWNER, "Acme", primary=True)
    b = _create(session_factory, OWNER, "Beta")

    s = session_factory()
    assert set_primary(s, Company, OWNER, b, True).ok
    s.close()

    assert _flags(session_factory, OTHER) == {theirs: True}
    assert _flags(session_factory, OWNER) == {a: False, b: True}


def test_demote_touches_only_target(session_factory):
    a = _create(session_factory, OWNER, "Acme", primary=True)
    b = _create(session_factory, OWNER, "Beta")

    s = session_factory()
    result = set_primary(s, Company, OWNER, a, False, now=T1)
    s.close()

    assert result.ok
    assert result.is_primary is False
    s = session_factory()
    assert s.get(Company, a).updated_at == T1
    assert s.get(Company, b).updated_at == T0
    s.close()
    assert _count(session_factory, OWNER) == 0


def test_promote_clears_every_stray_primary(session_factory):
    # Rows written behind the manager's back, violating the invariant.
    s = session_factory()
    strays = [Company(owner_id=OWNER, name=f"Stray {i}", is_primary=True) for i in range(3)]
    target = Company(owner_id=OWNER, name="Target", is_primary=False)
    s.add_all(strays + [target])
    s.commit()
    target_id = target.id
    s.close()

    s = session_factory()
    assert set_primary(s, Company, OWNER, target_id, True).ok
    s.close()

    flags = _flags(session_factory, OWNER)
    assert _count(session_factory, OWNER) == 1
    assert flags[target_id] is True


def test_promote_with_changes_applies_both(session_factory):
    a = _create(session_factory, OWNER, "Acme")

    s = session_factory()
    result = set_primary(s, Company, OWNER, a, True, changes={"name": "Acme Corp", "industry": "Retail"})
    s.close()

    assert result.ok
    s = session_factory()
    company = s.get(Company, a)
    assert (company.name, company.industry, company.is_primary) == ("Acme Corp", "Retail", True)
    s.close()


def test_changes_cannot_rewrite_owner(session_factory):
    a = _create(session_factory, OWNER, "Acme")

    s = session_factory()
    assert set_primary(s, Company, OWNER, a, False, changes={"owner_id": OTHER}).ok
    s.close()

    s = session_factory()
    assert s.get(Company, a).owner_id == OWNER
    s.close()


def test_ownership_violation_writes_nothing(session_factory):
    theirs = _create(session_factory, OTHER, "Their Co")
    mine = _create(session_factory, OWNER, "Acme", primary=True)

    s = session_factory()
    before_events = s.query(AuditEvent).count()
    s.close()

    s = session_factory()
    result = set_primary(s, Company, OWNER, theirs, True, now=T1)
    s.close()

    assert result.error is FlagError.OWNERSHIP_VIOLATION
    assert not result.ok
    s = session_factory()
    row = s.get(Company, theirs)
    assert row.is_primary is False
    assert row.updated_at == T0
    assert s.get(Company, mine).is_primary is True
    assert s.query(AuditEvent).count() == before_events
    s.close()


def test_missing_target_is_not_found(session_factory):
    s = session_factory()
    result = set_primary(s, Company, OWNER, 9999, True)
    s.close()
    assert result.error is FlagError.NOT_FOUND
    assert result.entity_id == 9999


def test_deleting_primary_does_not_reelect(session_factory):
    a = _create(session_factory, OWNER, "Acme", primary=True)
    b = _create(session_factory, OWNER, "Beta")

    s = session_factory()
    assert delete_owned(s, Company, OWNER, a).ok
    s.close()

    assert _flags(session_factory, OWNER) == {b: False}
    assert _count(session_factory, OWNER) == 0


def test_delete_foreign_entity_is_rejected(session_factory):
    theirs = _create(session_factory, OTHER, "Their Co")

    s = session_factory()
    result = delete_owned(s, Company, OWNER, theirs)
    s.close()

    assert result.error is FlagError.OWNERSHIP_VIOLATION
    assert _flags(session_factory, OTHER) == {theirs: False}


def test_entity_types_have_separate_partitions(session_factory):
    company = _create(session_factory, OWNER, "Acme", primary=True)
    competitor = _create(session_factory, OWNER, "Rival", primary=True, model=Competitor)

    assert _flags(session_factory, OWNER) == {company: True}
    assert _flags(session_factory, OWNER, model=Competitor) == {competitor: True}


def test_stale_partition_read_is_a_conflict(session_factory):
    a = _create(session_factory, OWNER, "Acme")
    b = _create(session_factory, OWNER, "Beta")

    slow = session_factory()
    repo = OwnedEntityRepository(slow, Company)
    repo.lock_partition(OWNER)
    target = repo.get(a)

    fast = session_factory()
    assert set_primary(fast, Company, OWNER, b, True).ok
    fast.close()

    target.is_primary = True
    assert repo.upsert_batch([target]) is False
    slow.rollback()
    slow.close()

    assert _flags(session_factory, OWNER) == {a: False, b: True}


def test_concurrent_promotions_leave_exactly_one_primary(session_factory):
    a = _create(session_factory, OWNER, "Acme")
    b = _create(session_factory, OWNER, "Beta")
    barrier = threading.Barrier(2)
    outcomes: dict[int, list] = {a: [], b: []}

    def promote(target_id: int) -> None:
        barrier.wait()
        # Callers retry on CONFLICT with fresh data.
        for _ in range(20):
            s = session_factory()
            try:
                result = set_primary(s, Company, OWNER, target_id, True)
            finally:
                s.close()
            outcomes[target_id].append(result.error)
            if result.error is not FlagError.CONFLICT:
                return

    threads = [threading.Thread(target=promote, args=(tid,)) for tid in (a, b)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert all(errors and errors[-1] is None for errors in outcomes.values())
    flags = _flags(session_factory, OWNER)
    assert _count(session_factory, OWNER) == 1
    assert sum(flags.values()) == 1
    assert {tid for tid, is_primary in flags.items() if is_primary} <= {a, b}


def test_every_step_keeps_at_most_one_primary(session_factory):
    ids = [_create(session_factory, OWNER, f"Co {i}", primary=(i % 2 == 0)) for i in range(4)]
    assert _count(session_factory, OWNER) <= 1

    for target, wants in [(ids[1], True), (ids[3], True), (ids[3], False), (ids[0], True), (ids[2], True)]:
        s = session_factory()
        assert set_primary(s, Company, OWNER, target, wants).ok
        s.close()
        assert _count(session_factory, OWNER) <= 1

    assert _flags(session_factory, OWNER)[ids[2]] is True


def test_set_primary_records_audit_event(session_factory):
    a = _create(session_factory, OWNER, "Acme", primary=True)
    b = _create(session_factory, OWNER, "Beta")

    s = session_factory()
    set_primary(s, Company, OWNER, b, True)
    s.close()

    s = session_factory()
    ev = s.query(AuditEvent).filter(AuditEvent.action == "company.set_primary").one()
    assert ev.entity_id == str(b)
    assert f"[{a}]" in ev.metadata_json
    s.close()


def test_constraint_violation_propagates_and_writes_nothing(session_factory):
    a = _create(session_factory, OWNER, "Acme")
    b = _create(session_factory, OWNER, "Beta", primary=True)

    s = session_factory()
    with pytest.raises(IntegrityError, match="NOT NULL"):
        set_primary(s, Company, OWNER, a, True, changes={"name": None})
    s.close()

    assert _flags(session_factory, OWNER) == {a: False, b: True}
    s = session_factory()
    assert s.get(Company, a).name == "Acme"
    s.close()


class _PgError(Exception):
    def __init__(self, message, *, sqlstate=None, constraint_name=None):
        super().__init__(message)
        self.sqlstate = sqlstate
        self.diag = type("Diag", (), {"constraint_name": constraint_name})()


@pytest.mark.parametrize(
    "exc, expected",
    [
        (StaleDataError("UPDATE statement on table 'primary_partitions' expected to update 1 row(s); 0 were matched."), True),
        (IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed: primary_partitions.owner_id, primary_partitions.entity_type")), True),
        (IntegrityError("INSERT", {}, _PgError("duplicate key", sqlstate="23505", constraint_name="uq_primary_partitions_owner_type")), True),
        (IntegrityError("UPDATE", {}, Exception("NOT NULL constraint failed: companies.name")), False),
        (IntegrityError("INSERT", {}, _PgError("null value", sqlstate="23502", constraint_name="companies_name_not_null")), False),
        (OperationalError("UPDATE", {}, Exception("database is locked")), True),
        (OperationalError("SELECT", {}, _PgError("canceling statement due to lock timeout", sqlstate="55P03")), True),
        (OperationalError("SELECT", {}, _PgError("server closed the connection unexpectedly", sqlstate="08006")), False),
        (ValueError("Company has no attribute 'nope'"), False),
    ],
)
def test_only_concurrent_write_errors_count_as_conflicts(exc, expected):
    assert is_conflict_error(exc) is expected
