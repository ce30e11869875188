"""
Field device to lighting target mapping.

Key Components:
- models: Binding and BindingType
- registry: persistent keyed store of bindings
- allocator: automatic binding creation
- router: event to lighting call dispatch
"""

from .models import Binding, BindingType

from .registry import MappingRegistry

from .allocator import (
    MappingAllocator,
    AllocationExhausted,
    classify,
    MAX_EXTENSION_ATTEMPTS,
    DEVICE_SERIAL_START,
    EXTENSION_BASE,
)

from .router import EventRouter, RouteOutcome, analog_to_brightness


__all__ = [
    "Binding",
    "BindingType",
    "MappingRegistry",
    "MappingAllocator",
    "AllocationExhausted",
    "classify",
    "MAX_EXTENSION_ATTEMPTS",
    "DEVICE_SERIAL_START",
    "EXTENSION_BASE",
    "EventRouter",
    "RouteOutcome",
    "analog_to_brightness",
]
