"""Core package"""
from compliancefoundry.core.config import Settings, settings

__all__ = [
    "Settings",
    "settings",
]
