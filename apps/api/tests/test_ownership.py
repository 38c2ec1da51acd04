from __future__ import annotations

import uuid

import pytest

from recruitment.authz.ownership import (
    INITIAL_RESUME_STATUS,
    RESUME_STATUS_TRANSITIONS,
    ResumeStatus,
    can_hr_manage_job,
    can_hr_manage_user,
    can_hr_read_resume,
    can_hr_update_company,
    can_hr_update_resume_status,
    can_transition_resume_status,
    can_user_delete_account,
    can_user_delete_resume,
    can_user_manage_file,
    can_user_manage_resume,
    can_user_manage_subscriber,
    can_user_update_profile,
    can_user_update_resume_data,
    is_company_match,
    is_owner,
    is_resume_editable_by_owner,
    is_terminal_resume_status,
)


def test_is_owner_compares_string_forms() -> None:
    value = uuid.uuid4()
    assert is_owner(value, str(value))
    assert is_owner("u1", "u1")
    assert not is_owner("u1", "u2")
    assert not is_owner("u1", None)
    assert not is_owner(None, None)


def test_company_match_is_false_when_either_side_missing() -> None:
    assert is_company_match("c1", "c1")
    assert not is_company_match("c1", "c2")
    assert not is_company_match(None, "c1")
    assert not is_company_match("c1", None)
    assert not is_company_match("", "")


def test_hr_manage_job_matches_own_company_and_is_idempotent() -> None:
    for _ in range(3):
        assert can_hr_manage_job("c1", "c1")
        assert not can_hr_manage_job("c1", "c2")


def test_hr_company_scoped_checks() -> None:
    assert can_hr_manage_user("c1", "c1")
    assert not can_hr_manage_user("c1", None)
    assert can_hr_read_resume("c1", "c1")
    assert not can_hr_read_resume(None, "c1")
    assert can_hr_update_company("c1", "c1")
    assert not can_hr_update_company("c1", "c2")


def test_user_ownership_checks() -> None:
    assert can_user_manage_file("u1", "u1")
    assert not can_user_manage_file("u1", "u2")
    assert can_user_manage_resume("u1", "u1")
    assert can_user_update_profile("u1", "u1")
    assert not can_user_update_profile("u1", "u2")
    assert can_user_delete_account("u1", "u1")
    assert not can_user_delete_account("u1", "u2")


def test_subscriber_email_match_is_case_insensitive() -> None:
    assert can_user_manage_subscriber("Jane@Example.com", "jane@example.com")
    assert not can_user_manage_subscriber("jane@example.com", "john@example.com")
    assert not can_user_manage_subscriber(None, "jane@example.com")


def test_resume_data_update_requires_owner_and_pending() -> None:
    assert can_user_update_resume_data("owner", "owner", "PENDING")
    assert not can_user_update_resume_data("owner", "owner", "APPROVED")
    for status in ResumeStatus:
        assert not can_user_update_resume_data("owner", "other", status)


def test_resume_delete_requires_owner_and_pending() -> None:
    assert can_user_delete_resume("owner", "owner", ResumeStatus.PENDING)
    assert not can_user_delete_resume("owner", "owner", ResumeStatus.REVIEWING)
    assert not can_user_delete_resume("owner", "other", ResumeStatus.PENDING)


def test_status_values_are_normalized() -> None:
    assert is_resume_editable_by_owner("pending")
    assert is_resume_editable_by_owner(" PENDING ")
    assert not is_resume_editable_by_owner("UNKNOWN")
    assert not is_resume_editable_by_owner(None)


def test_resume_lifecycle() -> None:
    assert INITIAL_RESUME_STATUS == ResumeStatus.PENDING
    assert can_transition_resume_status("PENDING", "REVIEWING")
    assert can_transition_resume_status("REVIEWING", "APPROVED")
    assert can_transition_resume_status("REVIEWING", "REJECTED")
    assert not can_transition_resume_status("PENDING", "APPROVED")
    assert not can_transition_resume_status("REVIEWING", "PENDING")
    assert not can_transition_resume_status("APPROVED", "REVIEWING")
    assert not can_transition_resume_status("bogus", "REVIEWING")


@pytest.mark.parametrize("status", [ResumeStatus.APPROVED, ResumeStatus.REJECTED])
def test_terminal_states_have_no_transitions(status: ResumeStatus) -> None:
    assert is_terminal_resume_status(status)
    assert RESUME_STATUS_TRANSITIONS[status] == frozenset()


def test_nothing_returns_to_pending() -> None:
    for targets in RESUME_STATUS_TRANSITIONS.values():
        assert ResumeStatus.PENDING not in targets


def test_hr_resume_status_update() -> None:
    assert can_hr_update_resume_status("c1", "c1")
    assert not can_hr_update_resume_status("c1", "c2")
    assert can_hr_update_resume_status("c1", "c1", "PENDING", "REVIEWING")
    assert not can_hr_update_resume_status("c1", "c1", "APPROVED", "REJECTED")
    assert not can_hr_update_resume_status("c1", "c2", "PENDING", "REVIEWING")
