from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class WsEnvelope(BaseModel):
    """Envelope for WebSocket messages."""
    type: str = Field(..., description="Message type (e.g., 'machine.status', 'order.created').")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Message payload.")
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="Timestamp (UTC).")
    user_id: Optional[UUID] = Field(default=None, description="Sender user id, if applicable.")
    channel: Optional[str] = Field(default=None, description="Optional sub-channel.")


class MachineSnapshot(BaseModel):
    """Fleet overview pushed to machine subscribers on connect."""
    by_status: Dict[str, int] = Field(default_factory=dict, description="Machine count per status.")
    total: int = Field(0, description="Total machines.")
    online: int = Field(0, description="Machines reporting connection_status=online.")
    slots_needing_refill: int = Field(0, description="Slots at or below their minimum quantity.")
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="Snapshot timestamp (UTC).")
