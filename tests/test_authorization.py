"""
Unit tests for URL-level rules and operation-level predicates.
"""

import pytest

import services
from authorization import (AuthorizationGate, SecurityContext, authenticated, has_any_authority, hospital_rules,
                           permit_all, pre_authorize)
from config import ROLE_PERMISSIONS
from errors import AuthenticationRequired, Forbidden
from permissions import PermissionCatalog

catalog = PermissionCatalog(ROLE_PERMISSIONS)


def caller(account_id, *roles):
    return SecurityContext(
        account_id=account_id,
        username=f"user{account_id}@example.com",
        roles=frozenset(roles),
        authorities=catalog.authorities_for(roles),
    )


@pytest.fixture
def gate():
    return AuthorizationGate(hospital_rules())


# ── coarse rules ────────────────────────────────────────────────────

@pytest.mark.parametrize("method, path", [
    ("GET", "/public/doctors"),
    ("POST", "/auth/login"),
    ("GET", "/oauth2/authorization/google"),
    ("GET", "/login/oauth2/code/google"),
    ("GET", "/"),
    ("GET", "/docs"),
])
def test_public_paths_need_no_token(gate, method, path):
    gate.check_request(method, path, None)


@pytest.mark.parametrize("path", ["/users/me", "/patients/profile", "/admin/patients", "/doctors/appointments"])
def test_protected_paths_need_authentication(gate, path):
    with pytest.raises(AuthenticationRequired):
        gate.check_request("GET", path, None)


def test_admin_paths_need_admin_role(gate):
    gate.check_request("GET", "/admin/patients", caller(9, "ADMIN"))
    with pytest.raises(Forbidden):
        gate.check_request("GET", "/admin/patients", caller(6, "DOCTOR"))
    with pytest.raises(Forbidden):
        gate.check_request("GET", "/admin", caller(2, "PATIENT"))


def test_admin_delete_accepts_delete_permissions(gate):
    gate.check_request("DELETE", "/admin/appointments/1", caller(6, "DOCTOR"))
    gate.check_request("DELETE", "/admin/appointments/1", caller(9, "ADMIN"))
    with pytest.raises(Forbidden):
        gate.check_request("DELETE", "/admin/appointments/1", caller(2, "PATIENT"))


def test_doctor_paths_need_doctor_or_admin(gate):
    gate.check_request("GET", "/doctors/appointments", caller(6, "DOCTOR"))
    gate.check_request("GET", "/doctors/appointments", caller(9, "ADMIN"))
    with pytest.raises(Forbidden):
        gate.check_request("GET", "/doctors/appointments", caller(2, "PATIENT"))


def test_prefix_does_not_match_sibling_paths(gate):
    # /administrator is not under /admin
    gate.check_request("GET", "/administrator", caller(2, "PATIENT"))
    with pytest.raises(AuthenticationRequired):
        gate.check_request("GET", "/publicity", None)


def test_first_matching_rule_wins():
    gate = AuthorizationGate((
        permit_all("/open/**"),
        has_any_authority(["/open/**"], "ROLE_ADMIN"),
    ))
    gate.check_request("GET", "/open/thing", None)


def test_unmatched_path_defaults_to_authenticated():
    gate = AuthorizationGate((authenticated("/only/**"),))
    gate.check_request("GET", "/anything", caller(1, "PATIENT"))
    with pytest.raises(AuthenticationRequired):
        gate.check_request("GET", "/anything", None)


# ── fine rules ──────────────────────────────────────────────────────

@pre_authorize(lambda caller, owner_id, **_: caller.has_role("ADMIN") or caller.is_account(owner_id))
def read_owned(caller, owner_id, note="default"):
    return note


def test_pre_authorize_passes_bound_arguments():
    assert read_owned(caller(3, "PATIENT"), 3) == "default"
    assert read_owned(caller(9, "ADMIN"), owner_id=3, note="x") == "x"


def test_pre_authorize_rejects_before_running():
    with pytest.raises(Forbidden):
        read_owned(caller(4, "PATIENT"), 3)


def test_pre_authorize_requires_caller():
    with pytest.raises(AuthenticationRequired):
        read_owned(None, 3)


def test_doctor_sees_only_own_appointments(db):
    doctor = caller(6, "DOCTOR")
    appointments = services.get_doctor_appointments(doctor, 6)
    assert {a.doctor_id for a in appointments} == {6}
    with pytest.raises(Forbidden):
        services.get_doctor_appointments(doctor, 7)


def test_doctor_who_is_also_admin_sees_any_appointments(db):
    assert services.get_doctor_appointments(caller(6, "DOCTOR", "ADMIN"), 7)


def test_forbidden_message_does_not_name_the_rule(gate):
    with pytest.raises(Forbidden) as coarse:
        gate.check_request("GET", "/admin/patients", caller(2, "PATIENT"))
    with pytest.raises(Forbidden) as fine:
        services.get_doctor_appointments(caller(6, "DOCTOR"), 7)
    assert coarse.value.message == fine.value.message == "Access denied"
