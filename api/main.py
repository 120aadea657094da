"""FastAPI application for the rebalancing pipeline.

This module provides a minimal HTTP API service for:
- GET /health - Domain breaker state, relay queue and counters
- POST /callback - Off-chain callback intake for the destination handler
- GET /positions/{position_id} - Monitored position details
- GET /owners/{owner}/positions - Position ids owned by an address
- GET /stats - Aggregate counters and analytics totals

Requirements:
- REBALANCER_* environment variables (see rebalancer.config.Settings)
- DATABASE_URL optional; without it analytics are kept in memory
- No authentication (local network only)
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Path, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from rebalancer.config import CALLBACK_MAX_AGE_SECONDS, Settings
from rebalancer.deployment import Deployment, build_deployment
from rebalancer.errors import (
    AuthorizationError,
    RebalancerError,
    SlippageError,
    StateError,
    ValidationError,
)
from rebalancer.guards.authority import SIGNATURE_LENGTH
from rebalancer.persistence import PositionEventRecord, ReactiveLogRecord
from rebalancer.relay import encode_action_data
from rebalancer.types import ActionData, MonitoredPosition
from rebalancer.units import ZERO_ADDRESS, normalize_address

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Rebalancer API",
    description="API for callback intake, position lookup and pipeline statistics",
    version="1.0.0",
)

# Global deployment instance (built from the environment on first use)
_deployment: Deployment | None = None

MAX_UINT256 = 2**256 - 1

ERROR_STATUS: list[tuple[type[RebalancerError], int]] = [
    (ValidationError, 400),
    (AuthorizationError, 403),
    (StateError, 409),
    (SlippageError, 422),
]


def _get_deployment() -> Deployment:
    """Get or initialize the deployment."""
    global _deployment
    if _deployment is None:
        _deployment = build_deployment(Settings.from_env())
    return _deployment


def _hex(value: Optional[bytes]) -> Optional[str]:
    return None if value is None else "0x" + bytes(value).hex()


def _parse_hex(value: str, *, size: int, field: str) -> bytes:
    """Decode a 0x-prefixed hex string of exactly `size` bytes."""
    raw = value[2:] if value.startswith(("0x", "0X")) else None
    try:
        decoded = bytes.fromhex(raw) if raw is not None else b""
    except ValueError:
        decoded = b""
    if len(decoded) != size:
        raise HTTPException(
            status_code=400,
            detail={"error": "invalid_callback", "message": f"Invalid {field} format"},
        )
    return decoded


class CallbackActionData(BaseModel):
    action_type: Optional[str] = None
    token_in: str = ZERO_ADDRESS
    token_out: str = ZERO_ADDRESS
    amount: int = 0
    min_amount_out: int = 0


class CallbackRequestBody(BaseModel):
    # Optional so that missing fields map to 400 rather than 422.
    callback_id: Optional[str] = None
    position_id: Optional[str] = None
    action_data: Optional[CallbackActionData] = None
    signature: Optional[str] = None
    timestamp: Optional[int] = None


def _position_payload(position: MonitoredPosition) -> dict[str, Any]:
    return {
        "position_id": _hex(position.id),
        "owner": position.owner,
        "origin_chain_id": position.origin_chain_id,
        "origin_contract_ref": position.origin_contract_ref,
        "origin_token": position.origin_token,
        "origin_position_id": _hex(position.origin_position_id),
        "label": position.label,
        "threshold": str(position.threshold),
        "action_type": position.action_type.value,
        "gas_budget": str(position.gas_budget),
        "active": position.active,
        "created_at": position.created_at.isoformat(),
        "last_triggered_at": position.last_triggered_at.isoformat() if position.last_triggered_at else None,
    }


@app.exception_handler(RebalancerError)
async def rebalancer_error_handler(_request: Request, exc: RebalancerError) -> JSONResponse:
    """Map core rejections onto HTTP status codes."""
    status_code = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 400)
    logger.warning(f"Rejected with {status_code}: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": {"error": type(exc).__name__, "message": str(exc)}},
    )


@app.get("/health")
async def health() -> dict[str, Any]:
    """Health check endpoint.

    Returns:
        JSON with per-domain breaker state, relay queue depth and counters.
    """
    deployment = _get_deployment()
    counters = deployment.manager.counters.snapshot()
    return {
        "status": "ok",
        "domains": {
            domain.name: {"paused": domain.paused}
            for domain in (deployment.origin, deployment.manager, deployment.destination)
        },
        "relay": {
            "pending": deployment.relay.pending,
            "failures": len(deployment.relay.failures),
        },
        "counters": {
            "total_positions": counters.total_positions,
            "total_reactive_actions": counters.total_reactive_actions,
            "total_gas_used": str(counters.total_gas_used),
        },
    }


@app.post("/callback")
async def handle_callback(body: CallbackRequestBody) -> dict[str, Any]:
    """Off-chain callback intake.

    Validates the envelope, writes a pending reactive log, runs the callback
    through the destination handler and records the outcome.

    Raises:
        HTTPException: 400 for missing fields, bad signature format or a
        stale timestamp. Core rejections map through ERROR_STATUS.
    """
    if (
        not body.callback_id
        or not body.position_id
        or not body.signature
        or body.action_data is None
        or body.timestamp is None
    ):
        raise HTTPException(
            status_code=400,
            detail={"error": "invalid_callback", "message": "Missing required callback data"},
        )

    callback_id = _parse_hex(body.callback_id, size=32, field="callback_id")
    position_id = _parse_hex(body.position_id, size=32, field="position_id")
    signature = _parse_hex(body.signature, size=SIGNATURE_LENGTH, field="signature")
    if int(time.time()) - body.timestamp > CALLBACK_MAX_AGE_SECONDS:
        raise HTTPException(
            status_code=400,
            detail={"error": "invalid_callback", "message": "Callback timestamp too old"},
        )

    for amount in (body.action_data.amount, body.action_data.min_amount_out):
        if amount < 0:
            raise ValidationError("Amounts must not be negative")
        if amount > MAX_UINT256:
            raise ValidationError("Amounts must fit in uint256")
    action = ActionData(
        action_type=body.action_data.action_type or "",
        token_in=normalize_address(body.action_data.token_in, field="token_in", allow_zero=True),
        token_out=normalize_address(body.action_data.token_out, field="token_out", allow_zero=True),
        amount=body.action_data.amount,
        min_amount_out=body.action_data.min_amount_out,
    )
    action_data = encode_action_data(action)

    deployment = _get_deployment()
    store = deployment.store
    log_id = store.record_reactive_log(
        log=ReactiveLogRecord(position_id=_hex(position_id), status="pending", payload=body.model_dump())
    )
    logger.info(f"Received callback {body.callback_id} for {body.position_id} (log {log_id})")

    try:
        success = deployment.destination.process_callback(
            callback_id, position_id, action_data, signature
        )
    except RebalancerError:
        store.update_reactive_log(log_id=log_id, status="failed")
        raise

    store.update_reactive_log(log_id=log_id, status="success" if success else "failed")
    store.record_position_event(
        event=PositionEventRecord(
            position_id=_hex(position_id),
            event_type="threshold_breach",
            event_data=body.action_data.model_dump(),
        )
    )
    return {"success": True, "log_id": log_id, "action_success": success}


@app.get("/positions/{position_id}")
async def get_position(
    position_id: str = Path(..., description="0x-prefixed 32-byte position id"),
) -> dict[str, Any]:
    """Get a monitored position with its analytics history."""
    raw_id = _parse_hex(position_id, size=32, field="position_id")
    deployment = _get_deployment()
    position = deployment.manager.get_position(raw_id)
    if position is None:
        raise HTTPException(
            status_code=404,
            detail={"error": "not_found", "message": f"Position {position_id} not found"},
        )

    events = deployment.store.list_position_events(position_id=_hex(raw_id))
    logs = deployment.store.list_reactive_logs(position_id=_hex(raw_id))
    return {
        "position": _position_payload(position),
        "events": [{"event_type": e.event_type, "created_at": e.created_at.isoformat()} for e in events],
        "reactive_logs": [{"id": log.id, "status": log.status} for log in logs],
    }


@app.get("/owners/{owner}/positions")
async def get_owner_positions(owner: str = Path(..., description="Owner address")) -> dict[str, Any]:
    """List position ids monitored for `owner`."""
    deployment = _get_deployment()
    ids = deployment.manager.get_user_positions(owner)
    return {"owner": normalize_address(owner, field="owner"), "position_ids": [_hex(i) for i in ids]}


@app.get("/stats")
async def get_stats() -> dict[str, Any]:
    """Aggregate counters, gas escrow and reactive log outcomes."""
    deployment = _get_deployment()
    counters = deployment.manager.counters.snapshot()
    statuses = Counter(log.status for log in deployment.store.list_reactive_logs())
    return {
        "total_positions": counters.total_positions,
        "total_reactive_actions": counters.total_reactive_actions,
        "total_gas_used": str(counters.total_gas_used),
        "gas_fee_balance": str(deployment.manager.escrow_balance),
        "processed_events": len(deployment.manager.processed_events),
        "processed_callbacks": len(deployment.destination.processed_callbacks),
        "reactive_logs": {status: statuses.get(status, 0) for status in ("pending", "success", "failed")},
    }


@app.exception_handler(Exception)
async def global_exception_handler(_request, exc):
    """Global exception handler to ensure consistent error responses."""
    logger.exception(f"Unhandled error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred",
        },
    )
