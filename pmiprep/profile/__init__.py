from pmiprep.profile.onboarding import ProfileService

__all__ = ["ProfileService"]
