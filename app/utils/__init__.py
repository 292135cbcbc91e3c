from app.utils.verify_throttle import is_throttled, register_verify_attempt

__all__ = [
    "is_throttled",
    "register_verify_attempt",
]
