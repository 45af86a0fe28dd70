import threading
import time

import pytest

from teamhub.db import connect
from teamhub.errors import Forbidden, NotFound, ValidationError
from teamhub.teams import (
    add_member,
    archive_team,
    change_member_role,
    has_team_authority,
    list_members,
    list_roles,
    remove_member,
)
from teamhub.teams.roles import TeamRole, parse_role

from conftest import make_user


def _rows(conn, team_id, user_id):
    return conn.execute(
        "SELECT team_role, is_manager, deleted_at FROM team_members WHERE team_id=? AND user_id=?",
        (team_id, user_id),
    ).fetchall()


def test_parse_role():
    assert parse_role(" Manager ") is TeamRole.MANAGER
    assert parse_role("ADMIN") is TeamRole.ADMIN
    assert parse_role("owner") is None
    assert parse_role(None) is None


def test_role_catalog():
    assert [r["name"] for r in list_roles()] == ["member", "manager", "admin"]


def test_add_defaults_to_member(db, admin, alice, team):
    with connect(db) as conn:
        m = add_member(conn, team["id"], alice.subject_id, None, admin)
    assert m["team_role"] == "member"
    assert m["is_manager"] is False
    assert m["deleted_at"] is None


def test_add_writes_flag_from_tier(db, admin, alice, bob, team):
    with connect(db) as conn:
        assert add_member(conn, team["id"], alice.subject_id, "admin", admin)["is_manager"] is True
        assert add_member(conn, team["id"], bob.subject_id, "Manager", admin)["team_role"] == "manager"


def test_add_rejects_unknown_role(db, admin, alice, team):
    with connect(db) as conn:
        with pytest.raises(ValidationError) as ei:
            add_member(conn, team["id"], alice.subject_id, "owner", admin)
    assert ei.value.detail == "invalid_role"


def test_add_requires_ids(db, admin, team):
    with connect(db) as conn:
        with pytest.raises(ValidationError):
            add_member(conn, team["id"], "", None, admin)
        with pytest.raises(ValidationError):
            add_member(conn, None, "u1", None, admin)


def test_add_unknown_user_is_not_found(db, admin, team):
    with connect(db) as conn:
        with pytest.raises(NotFound) as ei:
            add_member(conn, team["id"], "no-such-user", None, admin)
    assert ei.value.detail == "user_not_found"


def test_add_to_archived_team_is_not_found(db, admin, alice, team):
    with connect(db) as conn:
        archive_team(conn, team["id"], admin)
        with pytest.raises(NotFound):
            add_member(conn, team["id"], alice.subject_id, None, admin)


def test_plain_member_cannot_add(db, admin, alice, bob, team):
    with connect(db) as conn:
        add_member(conn, team["id"], alice.subject_id, "member", admin)
        with pytest.raises(Forbidden):
            add_member(conn, team["id"], bob.subject_id, "member", alice)


def test_team_manager_can_add(db, admin, alice, bob, team):
    with connect(db) as conn:
        add_member(conn, team["id"], alice.subject_id, "manager", admin)
        m = add_member(conn, team["id"], bob.subject_id, "member", alice)
    assert m["user_id"] == bob.subject_id


def test_remove_then_readd_reuses_row(db, admin, alice, team):
    with connect(db) as conn:
        add_member(conn, team["id"], alice.subject_id, "manager", admin)
        removed = remove_member(conn, team["id"], alice.subject_id, admin)
        assert removed["deleted_at"] is not None

        add_member(conn, team["id"], alice.subject_id, "member", admin)
        rows = _rows(conn, team["id"], alice.subject_id)

    assert len(rows) == 1
    assert rows[0]["team_role"] == "member"
    assert not rows[0]["is_manager"]
    assert rows[0]["deleted_at"] is None


def test_remove_hides_member_from_listing(db, admin, alice, team):
    with connect(db) as conn:
        add_member(conn, team["id"], alice.subject_id, None, admin)
        remove_member(conn, team["id"], alice.subject_id, admin)
        ids = [m["user_id"] for m in list_members(conn, team["id"], admin)]
    assert ids == [admin.subject_id]


def test_remove_non_member_is_not_found(db, admin, alice, team):
    with connect(db) as conn:
        with pytest.raises(NotFound) as ei:
            remove_member(conn, team["id"], alice.subject_id, admin)
        assert ei.value.detail == "membership_not_found"

        add_member(conn, team["id"], alice.subject_id, None, admin)
        remove_member(conn, team["id"], alice.subject_id, admin)
        with pytest.raises(NotFound):
            remove_member(conn, team["id"], alice.subject_id, admin)


def test_change_role_on_non_member_inserts(db, admin, alice, team):
    with connect(db) as conn:
        m = change_member_role(conn, team["id"], alice.subject_id, "manager", admin)
        assert m["team_role"] == "manager"
        assert m["is_manager"] is True
        assert has_team_authority(conn, alice.subject_id, team["id"]) is True
        assert len(_rows(conn, team["id"], alice.subject_id)) == 1


def test_change_role_demotes(db, admin, alice, team):
    with connect(db) as conn:
        add_member(conn, team["id"], alice.subject_id, "admin", admin)
        m = change_member_role(conn, team["id"], alice.subject_id, "member", admin)
        assert m["is_manager"] is False
        assert has_team_authority(conn, alice.subject_id, team["id"]) is False


def test_change_role_validates(db, admin, alice, team):
    with connect(db) as conn:
        with pytest.raises(ValidationError) as ei:
            change_member_role(conn, team["id"], alice.subject_id, None, admin)
        assert ei.value.detail == "team_id_user_id_role_required"
        with pytest.raises(ValidationError) as ei:
            change_member_role(conn, team["id"], alice.subject_id, "boss", admin)
        assert ei.value.detail == "invalid_role"


def test_change_role_requires_authority(db, admin, alice, bob, team):
    with connect(db) as conn:
        add_member(conn, team["id"], alice.subject_id, "member", admin)
        with pytest.raises(Forbidden):
            change_member_role(conn, team["id"], alice.subject_id, "manager", alice)
        with pytest.raises(Forbidden):
            change_member_role(conn, team["id"], bob.subject_id, "member", None)


def test_list_members_requires_membership(db, admin, alice, bob, team):
    with connect(db) as conn:
        with pytest.raises(Forbidden):
            list_members(conn, team["id"], bob)
        add_member(conn, team["id"], alice.subject_id, None, admin)
        rows = list_members(conn, team["id"], alice)
    assert {r["email"] for r in rows} == {"ada@example.com", "alice@example.com"}


def test_concurrent_adds_leave_one_active_row(db, admin, alice, team):
    workers = 4
    barrier = threading.Barrier(workers)
    errors = []

    def add(role):
        barrier.wait()
        try:
            with connect(db) as conn:
                add_member(conn, team["id"], alice.subject_id, role, admin)
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=add, args=("manager" if i % 2 else "member",)) for i in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    with connect(db) as conn:
        rows = _rows(conn, team["id"], alice.subject_id)
    assert len(rows) == 1
    assert rows[0]["deleted_at"] is None
    assert rows[0]["team_role"] in ("member", "manager")


def test_members_listed_in_join_order(db, admin, alice, bob, team):
    carol = make_user(db, "Carol", "carol@example.com")
    with connect(db) as conn:
        for user in (alice, bob, carol):
            time.sleep(0.002)
            add_member(conn, team["id"], user.subject_id, None, admin)

        remove_member(conn, team["id"], alice.subject_id, admin)
        time.sleep(0.002)
        add_member(conn, team["id"], alice.subject_id, "manager", admin)

        ids = [m["user_id"] for m in list_members(conn, team["id"], admin)]
    # A re-added member keeps the original created_at, and with it their place.
    assert ids == [admin.subject_id, alice.subject_id, bob.subject_id, carol.subject_id]
