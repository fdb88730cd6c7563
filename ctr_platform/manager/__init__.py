from .hit_manager import HitManager, RegistrationResult, validate_referer

__all__ = ["HitManager", "RegistrationResult", "validate_referer"]
