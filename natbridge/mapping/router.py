"""
Event router.

Turns decoded bus events into lighting calls. Bus frames carry an
8-bit device id only, so ``route`` selects the target by position:

    target = targets[device_id % len(targets)]

Value translation:
    DigitalChanged  -> on/off
    AnalogChanged   -> brightness = clamp(int(value * 2.54), 0, 254), on if > 0
    ColorChanged    -> RGB color (the white channel is not used)
"""

import logging
from dataclasses import dataclass
from typing import List, Optional
from uuid import UUID

from ..lighting.models import LightingTarget, TargetType
from ..nat.models import AnalogChanged, ColorChanged, DigitalChanged, NatEvent

logger = logging.getLogger(__name__)

MAX_BRIGHTNESS = 254
BRIGHTNESS_SCALE = 2.54


def analog_to_brightness(value: float) -> int:
    """Map a 0-100 analog value onto the 0-254 brightness range."""
    return max(0, min(MAX_BRIGHTNESS, int(value * BRIGHTNESS_SCALE)))


@dataclass
class RouteOutcome:
    """Result of routing one event."""
    success: bool
    target_id: Optional[UUID] = None
    action: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "target_id": str(self.target_id) if self.target_id else None,
            "action": self.action,
            "error": self.error,
        }


class EventRouter:
    """
    Dispatches NAT events to the lighting client.

    ``lighting`` is anything with the HueClient actuation methods
    (``get_lights``, ``set_light_state``, ``set_light_color``,
    ``set_group_state``, ``activate_scene``).
    """

    def __init__(self, lighting):
        self.lighting = lighting
        self.routed_count = 0
        self.failed_count = 0

    async def route(
        self,
        event: NatEvent,
        targets: Optional[List[LightingTarget]] = None,
    ) -> RouteOutcome:
        """Send an event to the fallback target for its device id."""
        if targets is None:
            try:
                targets = await self.lighting.get_lights()
            except Exception as e:
                logger.error(f"Failed to list lights for device {event.device_id}: {e}")
                self.failed_count += 1
                return RouteOutcome(success=False, error=str(e))

        if not targets:
            logger.warning("No lights available for default mapping")
            return RouteOutcome(success=False, error="no targets available")

        target = targets[event.device_id % len(targets)]
        logger.info(
            f"Using default mapping: NAT device {event.device_id} -> "
            f"Light {target.id} ({target.display_name})"
        )
        return await self.forward(target.id, event, target.target_type)

    async def forward(
        self,
        target_id: UUID,
        event: NatEvent,
        target_type: TargetType = TargetType.LIGHT,
    ) -> RouteOutcome:
        """Apply an event to a specific target."""
        try:
            if target_type == TargetType.SCENE:
                action = "scene"
                ok = await self._forward_scene(target_id, event)
            elif target_type == TargetType.GROUP:
                action, ok = await self._forward_group(target_id, event)
            else:
                action, ok = await self._forward_light(target_id, event)
        except Exception as e:
            logger.error(f"Failed to apply {type(event).__name__} to {target_type.value} {target_id}: {e}")
            self.failed_count += 1
            return RouteOutcome(success=False, target_id=target_id, error=str(e))

        if not ok:
            logger.error(f"Lighting bridge rejected {action} for {target_type.value} {target_id}")
            self.failed_count += 1
            return RouteOutcome(success=False, target_id=target_id, action=action, error="actuation failed")

        self.routed_count += 1
        return RouteOutcome(success=True, target_id=target_id, action=action)

    async def _forward_light(self, target_id: UUID, event: NatEvent):
        if isinstance(event, DigitalChanged):
            return "state", await self.lighting.set_light_state(target_id, event.value)

        if isinstance(event, AnalogChanged):
            brightness = analog_to_brightness(event.value)
            return "brightness", await self.lighting.set_light_state(target_id, brightness > 0, brightness)

        if isinstance(event, ColorChanged):
            return "color", await self.lighting.set_light_color(
                target_id, event.red, event.green, event.blue
            )

        raise TypeError(f"Unsupported event {type(event).__name__}")

    async def _forward_group(self, target_id: UUID, event: NatEvent):
        if isinstance(event, DigitalChanged):
            return "state", await self.lighting.set_group_state(target_id, event.value)

        if isinstance(event, AnalogChanged):
            brightness = analog_to_brightness(event.value)
            return "brightness", await self.lighting.set_group_state(target_id, brightness > 0, brightness)

        # Groups have no color call; treat any non-black color as "on"
        if isinstance(event, ColorChanged):
            on = bool(event.red or event.green or event.blue)
            return "state", await self.lighting.set_group_state(target_id, on)

        raise TypeError(f"Unsupported event {type(event).__name__}")

    async def _forward_scene(self, target_id: UUID, event: NatEvent) -> bool:
        # Scenes are recalled on a rising edge or any non-zero value
        if isinstance(event, DigitalChanged):
            active = event.value
        elif isinstance(event, AnalogChanged):
            active = event.value > 0
        elif isinstance(event, ColorChanged):
            active = bool(event.red or event.green or event.blue)
        else:
            raise TypeError(f"Unsupported event {type(event).__name__}")

        if not active:
            return True
        return await self.lighting.activate_scene(target_id)
