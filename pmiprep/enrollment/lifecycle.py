"""
Enrollment lifecycle.

- create_enrollment: cooldown gate, duplicate guard, persisted as pending
- request_unenrollment: one pending request per enrollment
- approve/deny: admin-only terminal transitions on a pending request
- compute_unenrollment_terms: refund and cooldown arithmetic from plan terms

Plan and currency are always passed in by the caller.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from loguru import logger

from pmiprep.core.auth import AdminResolver
from pmiprep.core.errors import (
    AuthorizationError,
    CooldownActiveError,
    PrepError,
    ValidationError,
)
from pmiprep.core.models import (
    Enrollment,
    EnrollmentStatus,
    RequestStatus,
    UnenrollmentReason,
    UnenrollmentRequest,
    User,
    format_datetime,
    utcnow,
)
from pmiprep.core.plans import CURRENCY_SYMBOLS, PricingPlan, get_plan
from pmiprep.store.base import Collection, DocumentStore, Filter, equal, user_permissions
from pmiprep.store.policy import strict_reads

REFUND_RATE = 0.5
SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class UnenrollmentTerms:
    days_since_enrollment: int
    refund_eligible: bool
    refund_amount: float
    cooldown_ends_at: datetime


def compute_unenrollment_terms(plan: PricingPlan, enrolled_at: datetime, now: datetime) -> UnenrollmentTerms:
    """Whole days since enrollment decide refund eligibility; the refund is a flat half of the base price."""
    days = math.floor((now - enrolled_at).total_seconds() / SECONDS_PER_DAY)
    eligible = days <= plan.refund_eligibility_days
    return UnenrollmentTerms(
        days_since_enrollment=days,
        refund_eligible=eligible,
        refund_amount=plan.base_price * REFUND_RATE if eligible else 0.0,
        cooldown_ends_at=now + timedelta(days=plan.cooldown_days),
    )


class EnrollmentLifecycle:
    def __init__(
        self,
        store: DocumentStore,
        admin_resolver: AdminResolver | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        # guard reads: never answered from a fallback copy
        self.guard_store = strict_reads(store)
        self.admin_resolver = admin_resolver or AdminResolver(store)
        self.clock = clock

    # ========================================
    # Queries
    # ========================================

    def list_user_enrollments(self, user_id: str, strict: bool = False) -> list[Enrollment]:
        store = self.guard_store if strict else self.store
        documents = store.list_documents(Collection.ENROLLMENTS, [equal("userId", user_id)])
        return [Enrollment.from_dict(d) for d in documents]

    def get_enrollment(self, enrollment_id: str, strict: bool = False) -> Enrollment:
        store = self.guard_store if strict else self.store
        return Enrollment.from_dict(store.get_document(Collection.ENROLLMENTS, enrollment_id))

    def list_requests(self, status: RequestStatus | None = None) -> list[UnenrollmentRequest]:
        filters: list[Filter] = [equal("status", status)] if status else []
        documents = self.store.list_documents(
            Collection.UNENROLLMENT_REQUESTS, filters, order_by="requestedAt", descending=True
        )
        return [UnenrollmentRequest.from_dict(d) for d in documents]

    def get_request(self, request_id: str, strict: bool = False) -> UnenrollmentRequest:
        store = self.guard_store if strict else self.store
        return UnenrollmentRequest.from_dict(
            store.get_document(Collection.UNENROLLMENT_REQUESTS, request_id)
        )

    # ========================================
    # Enrollment
    # ========================================

    def check_reenrollment(self, user_id: str, certification: str, now: datetime | None = None) -> None:
        """Raise CooldownActiveError while an approved unenrollment's cooldown runs."""
        now = now or self.clock()
        blocking = [
            e
            for e in self.list_user_enrollments(user_id, strict=True)
            if e.status is EnrollmentStatus.INACTIVE
            and e.cooldown_ends_at is not None
            and certification in e.certifications
            and now < e.cooldown_ends_at
        ]
        if not blocking:
            return
        ends_at = max(e.cooldown_ends_at for e in blocking if e.cooldown_ends_at is not None)
        remaining = math.ceil((ends_at - now).total_seconds() / SECONDS_PER_DAY)
        raise CooldownActiveError(certification, remaining, ends_at)

    def create_enrollment(
        self,
        user: User,
        plan: PricingPlan,
        currency: str,
        course_id: str | None = None,
        now: datetime | None = None,
    ) -> Enrollment:
        now = now or self.clock()
        currency = (currency or "").upper()
        if currency not in CURRENCY_SYMBOLS:
            raise ValidationError(f"Unsupported currency: {currency or '(none)'}", field="currency")

        for certification in plan.certifications:
            self.check_reenrollment(user.id, certification, now)

        for existing in self.list_user_enrollments(user.id, strict=True):
            if existing.status is EnrollmentStatus.INACTIVE:
                continue
            if existing.plan_name == plan.name:
                raise ValidationError(f"Already enrolled in {plan.name}", field="planName")
            if course_id and existing.course_id == course_id:
                raise ValidationError(f"Already enrolled in course {course_id}", field="courseId")

        enrollment = Enrollment(
            user_id=user.id,
            plan_name=plan.name,
            plan_base_price=plan.base_price,
            currency=currency,
            certifications=list(plan.certifications),
            status=EnrollmentStatus.PENDING,
            created_at=now,
            course_id=course_id,
        )
        document = self.store.create_document(
            Collection.ENROLLMENTS, enrollment.to_dict(), permissions=user_permissions(user.id)
        )
        logger.info("User {} enrolled in {} ({})", user.id, plan.name, currency)
        return Enrollment.from_dict(document)

    # ========================================
    # Unenrollment
    # ========================================

    def request_unenrollment(
        self,
        user: User,
        enrollment_id: str,
        reason: UnenrollmentReason | str | None,
        details: str | None = None,
        now: datetime | None = None,
    ) -> UnenrollmentRequest:
        if not reason:
            raise ValidationError("A reason for unenrolling is required", field="reasonCategory")
        try:
            reason = UnenrollmentReason(reason)
        except ValueError:
            raise ValidationError(f"Unknown reason: {reason}", field="reasonCategory") from None
        details = (details or "").strip() or None
        if reason is UnenrollmentReason.OTHER and not details:
            raise ValidationError("Please describe your reason", field="reasonDetails")

        enrollment = self.get_enrollment(enrollment_id, strict=True)
        if enrollment.user_id != user.id:
            raise AuthorizationError("Enrollment belongs to another user")
        if enrollment.status is EnrollmentStatus.INACTIVE:
            raise ValidationError("Enrollment is already inactive", field="enrollmentId")

        pending = self.guard_store.list_documents(
            Collection.UNENROLLMENT_REQUESTS,
            [equal("enrollmentId", enrollment_id), equal("status", RequestStatus.PENDING)],
            limit=1,
        )
        if pending:
            raise ValidationError(
                "An unenrollment request for this enrollment is already pending",
                field="enrollmentId",
            )

        request = UnenrollmentRequest(
            user_id=user.id,
            enrollment_id=enrollment_id,
            certification_name=", ".join(enrollment.certifications),
            plan_tier=enrollment.plan_name,
            reason_category=reason,
            reason_details=details,
            enrolled_at=enrollment.created_at,
            requested_at=now or self.clock(),
        )
        document = self.store.create_document(
            Collection.UNENROLLMENT_REQUESTS, request.to_dict(), permissions=user_permissions(user.id)
        )
        logger.info("Unenrollment requested for {} by {} ({})", enrollment_id, user.id, reason.value)
        return UnenrollmentRequest.from_dict(document)

    def _pending_request(self, request_id: str) -> UnenrollmentRequest:
        request = self.get_request(request_id, strict=True)
        if request.status is not RequestStatus.PENDING:
            raise ValidationError(f"Request {request_id} is already {request.status.value}", field="status")
        return request

    def approve_unenrollment(
        self, admin: User, request_id: str, now: datetime | None = None
    ) -> UnenrollmentRequest:
        """
        Approve a pending request.

        The enrollment is deactivated first, then the request is stamped. If
        stamping fails the enrollment is put back and the error propagates.
        """
        self.admin_resolver.require_admin(admin)
        now = now or self.clock()
        request = self._pending_request(request_id)
        enrollment = self.get_enrollment(request.enrollment_id, strict=True)
        plan = get_plan(request.plan_tier)
        terms = compute_unenrollment_terms(plan, request.enrolled_at, now)

        self.store.update_document(
            Collection.ENROLLMENTS,
            request.enrollment_id,
            {
                "status": EnrollmentStatus.INACTIVE.value,
                "cooldownEndsAt": format_datetime(terms.cooldown_ends_at),
            },
        )
        try:
            document = self.store.update_document(
                Collection.UNENROLLMENT_REQUESTS,
                request_id,
                {
                    "status": RequestStatus.APPROVED.value,
                    "processedAt": format_datetime(now),
                    "processedBy": admin.id,
                    "cooldownDays": plan.cooldown_days,
                    "refundEligible": terms.refund_eligible,
                    "refundAmount": terms.refund_amount,
                },
            )
        except PrepError as exc:
            logger.error("Approving {} failed after deactivating enrollment: {}", request_id, exc)
            self.store.update_document(
                Collection.ENROLLMENTS,
                request.enrollment_id,
                {
                    "status": enrollment.status.value,
                    "cooldownEndsAt": format_datetime(enrollment.cooldown_ends_at),
                },
            )
            raise

        logger.info(
            "Unenrollment {} approved by {}: refund={} ({}), cooldown until {}",
            request_id,
            admin.id,
            terms.refund_amount,
            "eligible" if terms.refund_eligible else "not eligible",
            terms.cooldown_ends_at.date(),
        )
        return UnenrollmentRequest.from_dict(document)

    def deny_unenrollment(
        self, admin: User, request_id: str, now: datetime | None = None
    ) -> UnenrollmentRequest:
        self.admin_resolver.require_admin(admin)
        self._pending_request(request_id)
        document = self.store.update_document(
            Collection.UNENROLLMENT_REQUESTS,
            request_id,
            {
                "status": RequestStatus.DENIED.value,
                "processedAt": format_datetime(now or self.clock()),
                "processedBy": admin.id,
            },
        )
        logger.info("Unenrollment {} denied by {}", request_id, admin.id)
        return UnenrollmentRequest.from_dict(document)
