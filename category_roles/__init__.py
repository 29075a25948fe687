from .controller import Controller, PressOutcome
from .manager import ControllerManager
from .ratelimit import RateLimiter

__all__ = ["Controller", "ControllerManager", "PressOutcome", "RateLimiter"]
