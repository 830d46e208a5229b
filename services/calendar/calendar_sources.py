"""
=====================================================
Voice Scheduling Platform - Calendar Source Registry
=====================================================
"""

import json
from typing import Callable, Dict, Optional, Tuple, Any

from loguru import logger

from services.calendar.calendar_base import CalendarSourceBase
from services.calendar.ms_bookings_service import create_calendar_service
from services.tenants.tenant_base import CalendarSource


SourceFactory = Callable[[Dict[str, Any]], CalendarSourceBase]


class CalendarSourceRegistry:
    """
    Builds calendar sources from tenant descriptors.

    Instances are shared between tenants with an identical descriptor
    so HTTP clients and access tokens are reused.
    """

    def __init__(self, factories: Dict[str, SourceFactory] = None):
        self.factories: Dict[str, SourceFactory] = factories if factories is not None else {
            'ms_bookings': create_calendar_service,
        }
        self._instances: Dict[Tuple[str, str], CalendarSourceBase] = {}

    def register(self, kind: str, factory: SourceFactory):
        self.factories[kind] = factory
        self._instances = {k: v for k, v in self._instances.items() if k[0] != kind}

    def get(self, descriptor: Optional[CalendarSource]) -> Optional[CalendarSourceBase]:
        """
        Get the source for a descriptor

        Returns:
            Source instance, or None for unknown kinds (local computation)
        """
        if descriptor is None:
            return None

        factory = self.factories.get(descriptor.kind)
        if factory is None:
            logger.warning(f"Availability: Unknown calendar source '{descriptor.kind}', using local slots")
            return None

        key = (descriptor.kind, json.dumps(descriptor.config, sort_keys=True, default=str))
        if key not in self._instances:
            self._instances[key] = factory(descriptor.config)
        return self._instances[key]


# Global instance
_registry: Optional[CalendarSourceRegistry] = None


def get_calendar_registry() -> CalendarSourceRegistry:
    """Get global calendar source registry"""
    global _registry
    if _registry is None:
        _registry = CalendarSourceRegistry()
    return _registry
