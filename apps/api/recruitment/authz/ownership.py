"""Ownership and status predicates over already-loaded resource values.

Handlers that must load a record before deciding (a job's company, a resume's
owner and status) call these directly after the request guard has passed. All
functions are pure; identifiers are compared by their string form so that UUID
objects, ObjectId-like values and plain strings interoperate.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ResumeStatus(StrEnum):
    PENDING = "PENDING"
    REVIEWING = "REVIEWING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


INITIAL_RESUME_STATUS = ResumeStatus.PENDING

# HR-driven and one-directional; nothing leads back to PENDING.
RESUME_STATUS_TRANSITIONS: dict[ResumeStatus, frozenset[ResumeStatus]] = {
    ResumeStatus.PENDING: frozenset({ResumeStatus.REVIEWING}),
    ResumeStatus.REVIEWING: frozenset({ResumeStatus.APPROVED, ResumeStatus.REJECTED}),
    ResumeStatus.APPROVED: frozenset(),
    ResumeStatus.REJECTED: frozenset(),
}


def _normalize(value: Any) -> str | None:
    if value is None:
        return None
    normalized = str(value)
    return normalized or None


def _parse_status(value: Any) -> ResumeStatus | None:
    if isinstance(value, ResumeStatus):
        return value
    if not isinstance(value, str):
        return None
    try:
        return ResumeStatus(value.strip().upper())
    except ValueError:
        return None


def is_owner(subject_id: Any, resource_owner_id: Any) -> bool:
    subject = _normalize(subject_id)
    owner = _normalize(resource_owner_id)
    if subject is None or owner is None:
        return False
    return subject == owner


def is_company_match(company_id_a: Any, company_id_b: Any) -> bool:
    left = _normalize(company_id_a)
    right = _normalize(company_id_b)
    if left is None or right is None:
        return False
    return left == right


def is_resume_editable_by_owner(status: Any) -> bool:
    return _parse_status(status) == ResumeStatus.PENDING


def is_terminal_resume_status(status: Any) -> bool:
    parsed = _parse_status(status)
    return parsed is not None and not RESUME_STATUS_TRANSITIONS[parsed]


def can_transition_resume_status(current: Any, target: Any) -> bool:
    current_status = _parse_status(current)
    target_status = _parse_status(target)
    if current_status is None or target_status is None:
        return False
    return target_status in RESUME_STATUS_TRANSITIONS[current_status]


def can_hr_manage_user(hr_company_id: Any, target_user_company_id: Any) -> bool:
    return is_company_match(hr_company_id, target_user_company_id)


def can_hr_manage_job(hr_company_id: Any, job_company_id: Any) -> bool:
    return is_company_match(hr_company_id, job_company_id)


def can_hr_read_resume(hr_company_id: Any, job_company_id: Any) -> bool:
    return is_company_match(hr_company_id, job_company_id)


def can_hr_update_company(hr_company_id: Any, company_id: Any) -> bool:
    return is_company_match(hr_company_id, company_id)


def can_hr_update_resume_status(
    hr_company_id: Any,
    job_company_id: Any,
    current_status: Any = None,
    target_status: Any = None,
) -> bool:
    """HR may move a resume only for jobs of their own company.

    When both statuses are given the move must also be a legal lifecycle step.
    """

    if not is_company_match(hr_company_id, job_company_id):
        return False
    if current_status is None and target_status is None:
        return True
    return can_transition_resume_status(current_status, target_status)


def can_user_manage_file(user_id: Any, file_user_id: Any) -> bool:
    return is_owner(user_id, file_user_id)


def can_user_manage_resume(user_id: Any, resume_user_id: Any) -> bool:
    return is_owner(user_id, resume_user_id)


def can_user_update_profile(user_id: Any, target_user_id: Any) -> bool:
    return is_owner(user_id, target_user_id)


def can_user_delete_account(user_id: Any, target_user_id: Any) -> bool:
    return is_owner(user_id, target_user_id)


def can_user_manage_subscriber(user_email: Any, subscriber_email: Any) -> bool:
    left = _normalize(user_email)
    right = _normalize(subscriber_email)
    if left is None or right is None:
        return False
    return left.strip().lower() == right.strip().lower()


def can_user_update_resume_data(user_id: Any, resume_user_id: Any, status: Any) -> bool:
    return is_owner(user_id, resume_user_id) and is_resume_editable_by_owner(status)


def can_user_delete_resume(user_id: Any, resume_user_id: Any, status: Any) -> bool:
    return is_owner(user_id, resume_user_id) and is_resume_editable_by_owner(status)
