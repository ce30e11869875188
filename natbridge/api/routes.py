"""
API routes for natbridge.
"""

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from ..lighting.models import TargetType
from ..logs import get_collector
from ..mapping.models import Binding, BindingType
from ..nat.serial import FormatError
from ..service import BindingExistsError, BridgeService
from .server import get_service

logger = logging.getLogger(__name__)

router = APIRouter()


# ============ Request/Response Models ============

class MappingModel(BaseModel):
    """A field device to lighting target binding."""
    extension_serial: str = Field(..., description="Extension serial, XX:XX:XX:XX")
    device_serial: str = Field(..., description="Device serial, XX:XX:XX:XX")
    target_id: str = Field(..., description="Lighting target UUID")
    target_type: TargetType = TargetType.LIGHT
    binding_type: BindingType = BindingType.DIGITAL
    options: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_binding(cls, binding: Binding) -> "MappingModel":
        return cls(
            extension_serial=binding.extension_serial,
            device_serial=binding.device_serial,
            target_id=str(binding.target_id),
            target_type=binding.target_type,
            binding_type=binding.binding_type,
            options=binding.options,
        )


class ReconcileResponse(BaseModel):
    """Result of an automatic mapping pass."""
    skipped: bool
    created: List[MappingModel] = Field(default_factory=list)


class TargetModel(BaseModel):
    """A lighting target."""
    id: str
    name: str
    type: TargetType
    supports_color: bool = False
    supports_dimming: bool = False
    on: Optional[bool] = None
    brightness: Optional[float] = None


class BridgeModel(BaseModel):
    """A discovered lighting bridge."""
    ip_address: str
    bridge_id: str = ""
    port: int = 443


class PairRequest(BaseModel):
    """Pairing request. The bridge's link button must be pressed first."""
    ip_address: Optional[str] = Field(default=None, description="Bridge IP (discovered if omitted)")


class PairResponse(BaseModel):
    success: bool
    ip_address: Optional[str] = None
    message: str


class LogEntryModel(BaseModel):
    timestamp: str
    level: str
    category: str
    message: str
    exception: Optional[str] = None


def _require_service() -> BridgeService:
    service = get_service()
    if service is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    return service


# ============ Routes ============

@router.get("/status")
async def get_status():
    """Bridge, bus and mapping status."""
    service = _require_service()
    return await service.status()


@router.get("/mappings", response_model=List[MappingModel])
async def list_mappings():
    service = _require_service()
    bindings = await service.registry.list()
    bindings.sort(key=lambda b: b.key)
    return [MappingModel.from_binding(b) for b in bindings]


@router.post("/mappings", response_model=MappingModel, status_code=201)
async def add_mapping(request: MappingModel):
    """
    Add a mapping.

    Returns 400 for malformed serials or target id and 409 if the field
    device is already mapped.
    """
    service = _require_service()

    try:
        target_id = UUID(request.target_id)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid target id: {request.target_id}")

    binding = Binding(
        extension_serial=request.extension_serial,
        device_serial=request.device_serial,
        target_id=target_id,
        target_type=request.target_type,
        binding_type=request.binding_type,
        options=request.options,
    )

    try:
        binding = await service.add_binding(binding)
    except FormatError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except BindingExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return MappingModel.from_binding(binding)


@router.delete("/mappings/{extension_serial}/{device_serial}")
async def delete_mapping(extension_serial: str, device_serial: str):
    service = _require_service()
    removed = await service.remove_binding(extension_serial, device_serial)
    if not removed:
        raise HTTPException(status_code=404, detail="Mapping not found")
    return {"removed": True}


@router.post("/mappings/reconcile", response_model=ReconcileResponse)
async def reconcile_mappings():
    """Run automatic mapping now."""
    service = _require_service()
    created = await service.reconcile()
    if created is None:
        return ReconcileResponse(skipped=True)
    return ReconcileResponse(
        skipped=False,
        created=[MappingModel.from_binding(b) for b in created],
    )


async def _targets(kind: str) -> List[TargetModel]:
    service = _require_service()
    getter = {
        "lights": service.lighting.get_lights,
        "groups": service.lighting.get_groups,
        "scenes": service.lighting.get_scenes,
    }[kind]
    return [TargetModel(**t.to_dict()) for t in await getter()]


@router.get("/lighting/lights", response_model=List[TargetModel])
async def list_lights():
    return await _targets("lights")


@router.get("/lighting/groups", response_model=List[TargetModel])
async def list_groups():
    return await _targets("groups")


@router.get("/lighting/scenes", response_model=List[TargetModel])
async def list_scenes():
    return await _targets("scenes")


@router.post("/lighting/discover", response_model=List[BridgeModel])
async def discover_bridges(timeout: float = Query(default=5.0, gt=0, le=30)):
    service = _require_service()
    bridges = await service.discover(timeout=timeout)
    return [BridgeModel(ip_address=b.ip_address, bridge_id=b.bridge_id, port=b.port) for b in bridges]


@router.post("/lighting/pair", response_model=PairResponse)
async def pair_bridge(request: PairRequest):
    service = _require_service()
    app_key = await service.pair(request.ip_address)
    if app_key is None:
        return PairResponse(
            success=False,
            ip_address=request.ip_address,
            message="Pairing failed. Press the link button on the bridge and try again.",
        )

    status = service.lighting.status
    return PairResponse(
        success=True,
        ip_address=status.ip_address if status else request.ip_address,
        message="Paired with bridge",
    )


@router.post("/lighting/unpair")
async def unpair_bridge():
    service = _require_service()
    service.unpair()
    return {"success": True}


@router.get("/logs", response_model=List[LogEntryModel])
async def get_logs(
    limit: int = Query(default=100, ge=1, le=1000),
    level: Optional[str] = None,
    category: Optional[str] = None,
):
    """Recent log entries, oldest first."""
    entries = get_collector().recent(limit=limit, min_level=level or 0, category=category)
    return [LogEntryModel(**e.to_dict()) for e in entries]
