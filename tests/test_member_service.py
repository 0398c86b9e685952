from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Make the careledger package importable for local test runs
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from careledger.core import config as core_config  # noqa: E402
from careledger.core.context import OperatorContext, Role  # noqa: E402
from careledger.db import models  # noqa: E402
from careledger.db import session as db_session  # noqa: E402
from careledger.domain.errors import (  # noqa: E402
    ConsistencyError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from careledger.repositories.sql_repository import SQLRepository  # noqa: E402
from careledger.services.care_service import CareLedgerService  # noqa: E402
from careledger.services.member_service import MemberService  # noqa: E402
from careledger.services.notification_service import NotificationService  # noqa: E402

ADMIN = OperatorContext(name="admin", role=Role.ADMIN)
STAFF = OperatorContext(name="staff", role=Role.STAFF)


class NullProvider:
    def recommend(self, goal, history):
        return "ok"


@pytest.fixture()
def db_env(tmp_path, monkeypatch):
    """Point DATABASE_URL at a temporary SQLite file and reset settings/engine caches."""
    db_file = tmp_path / "test.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_file}")
    monkeypatch.setenv("TIER_GOLD_THRESHOLD", "5000000")
    monkeypatch.setenv("TIER_ROYAL_THRESHOLD", "10000000")
    core_config.get_settings.cache_clear()
    db_session.get_engine.cache_clear()
    db_session._get_sessionmaker.cache_clear()  # type: ignore[attr-defined]

    engine = db_session.get_engine()
    models.Base.metadata.drop_all(bind=engine)
    models.Base.metadata.create_all(bind=engine)

    yield

    models.Base.metadata.drop_all(bind=engine)
    engine.dispose()
    db_session.get_engine.cache_clear()
    db_session._get_sessionmaker.cache_clear()  # type: ignore[attr-defined]
    core_config.get_settings.cache_clear()


def test_register_derives_id_and_initial_balance(db_env):
    svc = MemberService()
    member = svc.register_member(STAFF, name="Kim", phone="010-2222-3333", email="kim@example.com", deposit=300_000)

    assert member.id == "01022223333"
    assert (member.deposit, member.used, member.remaining) == (300_000, 0, 300_000)
    assert member.tier == "SILVER"
    entries = svc.repository.get_ledger_entries(member.id)
    assert [(e.kind, e.amount, e.remaining_after) for e in entries] == [("DEPOSIT", 300_000, 300_000)]


def test_register_rejects_duplicates_and_bad_input(db_env):
    svc = MemberService()
    svc.register_member(STAFF, name="Kim", phone="010-2222-3333")

    with pytest.raises(ValidationError) as exc:
        svc.register_member(STAFF, name="Kim again", phone="01022223333")
    assert exc.value.code == "duplicate"
    with pytest.raises(ValidationError):
        svc.register_member(STAFF, name="", phone="010-0000-0001")
    with pytest.raises(ValidationError):
        svc.register_member(STAFF, name="No phone", phone="---")
    with pytest.raises(ValidationError):
        svc.register_member(STAFF, name="Bad mail", phone="010-0000-0002", email="not-an-email")
    with pytest.raises(ValidationError):
        svc.register_member(STAFF, name="Negative", phone="010-0000-0003", deposit=-1)


def test_top_up_keeps_invariant_and_upgrades_tier(db_env):
    svc = MemberService()
    member = svc.register_member(STAFF, name="Kim", phone="010-2222-3333", deposit=4_000_000)
    assert member.tier == "SILVER"

    member = svc.top_up(STAFF, member.id, 1_500_000, note="contract renewal")

    assert member.deposit == 5_500_000
    assert member.remaining == member.deposit - member.used
    assert member.tier == "GOLD"


def test_top_up_never_downgrades_explicit_tier(db_env):
    svc = MemberService()
    member = svc.register_member(STAFF, name="Vip", phone="010-7777-7777", deposit=1_000_000, tier="ROYAL")

    member = svc.top_up(STAFF, member.id, 100_000)

    assert member.tier == "ROYAL"


def test_top_up_rejects_non_positive_amount(db_env):
    svc = MemberService()
    member = svc.register_member(STAFF, name="Kim", phone="010-2222-3333")
    for amount in (0, -5):
        with pytest.raises(ValidationError):
            svc.top_up(STAFF, member.id, amount)
    with pytest.raises(NotFoundError):
        svc.top_up(STAFF, "000", 1000)


def test_update_profile_rejects_balance_fields(db_env):
    svc = MemberService()
    member = svc.register_member(STAFF, name="Kim", phone="010-2222-3333", deposit=100_000)

    updated = svc.update_profile(STAFF, member.id, core_goal="better sleep", admin_note="prefers mornings")
    assert updated.core_goal == "better sleep"

    with pytest.raises(ValidationError):
        svc.update_profile(STAFF, member.id, remaining=999_999)
    assert svc.get_member(member.id).remaining == 100_000


def test_soft_delete_requires_admin_and_cancels_pending(db_env):
    repo = SQLRepository()
    svc = MemberService(repo)
    care = CareLedgerService(repo, NotificationService(repo, sender=lambda *a: True), NullProvider())
    member = svc.register_member(STAFF, name="Kim", phone="010-2222-3333", deposit=100_000)
    therapist = svc.add_therapist(STAFF, "Park")
    record = care.process_care_session(STAFF, member.id, therapist.id, 10_000)

    with pytest.raises(PermissionDeniedError):
        svc.delete_member(STAFF, member.id)

    svc.delete_member(ADMIN, member.id)

    with pytest.raises(NotFoundError):
        svc.get_member(member.id)
    assert repo.get_member(member.id, include_deleted=True).status == "deleted"
    assert repo.get_care_record(record.id).status == "CANCELLED"
    assert svc.search_members("Kim") == []


def test_member_role_cannot_register(db_env):
    svc = MemberService()
    member_ctx = OperatorContext(name="self", role=Role.MEMBER, member_id="01011112222")
    with pytest.raises(PermissionDeniedError):
        svc.register_member(member_ctx, name="Self", phone="010-1111-2222")


def test_verify_member_ledger_detects_drift(db_env):
    repo = SQLRepository()
    svc = MemberService(repo)
    care = CareLedgerService(repo, NotificationService(repo, sender=lambda *a: True), NullProvider())
    member = svc.register_member(STAFF, name="Kim", phone="010-2222-3333", deposit=200_000)
    therapist = svc.add_therapist(STAFF, "Park")
    record = care.process_care_session(STAFF, member.id, therapist.id, 50_000)
    care.sign_care_record(STAFF, record.id, "sig")

    report = svc.verify_member_ledger(member.id)
    assert report.completed_charges == 45_000
    assert report.remaining + report.completed_charges == report.deposit

    with db_session.get_session() as session:
        session.query(models.Member).filter_by(id=member.id).update({"remaining": 1})
        session.commit()
    with pytest.raises(ConsistencyError):
        svc.verify_member_ledger(member.id)


def test_search_members_by_name_or_phone(db_env):
    svc = MemberService()
    svc.register_member(STAFF, name="Kim Minji", phone="010-2222-3333")
    svc.register_member(STAFF, name="Park Jisoo", phone="010-4444-5555")

    assert [m.name for m in svc.search_members("minji")] == ["Kim Minji"]
    assert [m.name for m in svc.search_members("4444")] == ["Park Jisoo"]
    assert len(svc.search_members("")) == 2


def test_deposits_are_recorded_as_contracts(db_env):
    svc = MemberService()
    member = svc.register_member(STAFF, name="Kim", phone="010-2222-3333", deposit=1_000_000, signature="sig-1")
    svc.top_up(
        STAFF, member.id, 300_000, "PT package",
        contract_type="pt_agreement", contract_name="PT 10회", signature="sig-2",
    )

    contracts = svc.member_contracts(member.id)
    assert [(c.type, c.amount, c.type_name) for c in contracts] == [
        ("MEMBERSHIP", 1_000_000, ""),
        ("PT_AGREEMENT", 300_000, "PT 10회"),
    ]
    assert all(c.status == "COMPLETED" for c in contracts)
    entries = svc.repository.get_ledger_entries(member.id)
    assert [e.contract_id for e in entries] == [c.id for c in contracts]


def test_unknown_contract_type_rejected_before_any_change(db_env):
    svc = MemberService()
    member = svc.register_member(STAFF, name="Kim", phone="010-2222-3333", deposit=100_000)

    with pytest.raises(ValidationError):
        svc.top_up(STAFF, member.id, 50_000, contract_type="LOAN")
    assert svc.get_member(member.id).deposit == 100_000
    assert len(svc.member_contracts(member.id)) == 1


def test_phone_cannot_be_edited(db_env):
    svc = MemberService()
    member = svc.register_member(STAFF, name="Kim", phone="010-2222-3333")
    with pytest.raises(ValidationError):
        svc.update_profile(STAFF, member.id, phone="010-9999-9999")
    assert svc.get_member(member.id).phone == "010-2222-3333"


def test_audit_trail_is_admin_only(db_env):
    svc = MemberService()
    member = svc.register_member(STAFF, name="Kim", phone="010-2222-3333", deposit=100_000)
    svc.top_up(STAFF, member.id, 10_000)

    with pytest.raises(PermissionDeniedError):
        svc.audit_trail(STAFF)
    actions = [a.action for a in svc.audit_trail(ADMIN, f"member:{member.id}")]
    assert actions == ["TOP_UP", "REGISTER"]
