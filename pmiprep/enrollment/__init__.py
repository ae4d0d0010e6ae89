from pmiprep.enrollment.lifecycle import (
    EnrollmentLifecycle,
    UnenrollmentTerms,
    compute_unenrollment_terms,
)

__all__ = ["EnrollmentLifecycle", "UnenrollmentTerms", "compute_unenrollment_terms"]
