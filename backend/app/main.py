import json
import logging
import time
import uuid
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.availability import (
    AvailabilityError,
    AvailabilityUnitOfWork,
    compute_available_slots,
    delete_block,
    delete_window,
    map_validation_error,
    parse_create_block_args,
    parse_create_window_args,
    reconcile,
    serialize_block,
    serialize_window,
    validate_and_persist_block,
    validate_and_persist_window,
)
from app.db.session import SessionLocal
from app.security.dependencies import require_host_api_key, resolve_host_id


def configure_logging() -> logging.Logger:
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    return logging.getLogger("slotengine.backend")


logger = configure_logging()
app = FastAPI(title="Slot Engine Backend")


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    start_time = time.perf_counter()

    response = await call_next(request)

    duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
    response.headers["x-request-id"] = request_id

    logger.info(
        json.dumps(
            {
                "event": "http_request",
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            }
        )
    )
    return response


def _error_response(exc: AvailabilityError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def _system_down(action: str) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error_code": "SYSTEM_DOWN",
            "human_message": f"Temporary issue {action}.",
        },
    )


@app.get("/health")
async def health():
    return JSONResponse(content={"ok": True})


@app.get("/v1/listings/{listing_id}/available-slots")
async def available_slots(
    listing_id: int,
    start: str | None = None,
    end: str | None = None,
) -> JSONResponse:
    db = SessionLocal()
    try:
        slots = compute_available_slots(
            uow=AvailabilityUnitOfWork(db),
            listing_id=listing_id,
            range_start=start,
            range_end=end,
        )
        return JSONResponse(
            content={
                "ok": True,
                "data": {"listing_id": listing_id, "slots": [slot.to_dict() for slot in slots]},
            }
        )
    except AvailabilityError as exc:
        return _error_response(exc)
    except Exception:
        logger.exception("Failed computing slots listing_id=%s", listing_id)
        return _system_down("loading availability")
    finally:
        db.close()


@app.post("/v1/listings/{listing_id}/blocks", dependencies=[Depends(require_host_api_key)])
async def create_blocks(
    listing_id: int,
    payload: dict[str, Any],
    host_id: int | None = Depends(resolve_host_id),
) -> JSONResponse:
    try:
        args = parse_create_block_args(payload)
    except ValidationError as exc:
        return JSONResponse(content={"ok": False, **map_validation_error(exc)}, status_code=400)

    db = SessionLocal()
    try:
        result = validate_and_persist_block(
            uow=AvailabilityUnitOfWork(db),
            listing_id=listing_id,
            args=args,
            host_id=host_id,
        )
        return JSONResponse(
            status_code=201,
            content={
                "ok": True,
                "data": {
                    "status": result.status,
                    "blocks": [serialize_block(block) for block in result.blocks],
                    "removed_window_ids": result.reconciled_window_ids,
                    "warnings": result.warnings,
                },
            },
        )
    except AvailabilityError as exc:
        return _error_response(exc)
    except Exception:
        logger.exception("Failed creating blocks listing_id=%s", listing_id)
        return _system_down("saving blocked dates")
    finally:
        db.close()


@app.delete(
    "/v1/listings/{listing_id}/blocks/{block_id}",
    dependencies=[Depends(require_host_api_key)],
)
async def remove_block(
    listing_id: int,
    block_id: int,
    host_id: int | None = Depends(resolve_host_id),
) -> JSONResponse:
    db = SessionLocal()
    try:
        result = delete_block(
            uow=AvailabilityUnitOfWork(db),
            listing_id=listing_id,
            block_id=block_id,
            host_id=host_id,
        )
        return JSONResponse(
            content={
                "ok": True,
                "data": {
                    "status": result.status,
                    "deleted_block_id": block_id,
                    "removed_window_ids": result.reconciled_window_ids,
                    "warnings": result.warnings,
                },
            }
        )
    except AvailabilityError as exc:
        return _error_response(exc)
    except Exception:
        logger.exception("Failed deleting block listing_id=%s block_id=%s", listing_id, block_id)
        return _system_down("deleting blocked date")
    finally:
        db.close()


@app.post("/v1/listings/{listing_id}/windows", dependencies=[Depends(require_host_api_key)])
async def create_windows(
    listing_id: int,
    payload: dict[str, Any],
    host_id: int | None = Depends(resolve_host_id),
) -> JSONResponse:
    try:
        args = parse_create_window_args(payload)
    except ValidationError as exc:
        return JSONResponse(content={"ok": False, **map_validation_error(exc)}, status_code=400)

    db = SessionLocal()
    try:
        result = validate_and_persist_window(
            uow=AvailabilityUnitOfWork(db),
            listing_id=listing_id,
            args=args,
            host_id=host_id,
        )
        return JSONResponse(
            status_code=201,
            content={
                "ok": True,
                "data": {
                    "status": result.status,
                    "windows": [serialize_window(window) for window in result.windows],
                    "propagation": result.propagation.to_dict(),
                },
            },
        )
    except AvailabilityError as exc:
        return _error_response(exc)
    except Exception:
        logger.exception("Failed creating windows listing_id=%s", listing_id)
        return _system_down("saving availability")
    finally:
        db.close()


@app.delete(
    "/v1/listings/{listing_id}/windows/{window_id}",
    dependencies=[Depends(require_host_api_key)],
)
async def remove_window(
    listing_id: int,
    window_id: int,
    host_id: int | None = Depends(resolve_host_id),
) -> JSONResponse:
    db = SessionLocal()
    try:
        delete_window(
            uow=AvailabilityUnitOfWork(db),
            listing_id=listing_id,
            window_id=window_id,
            host_id=host_id,
        )
        return JSONResponse(content={"ok": True, "data": {"deleted_window_id": window_id}})
    except AvailabilityError as exc:
        return _error_response(exc)
    except Exception:
        logger.exception("Failed deleting window listing_id=%s window_id=%s", listing_id, window_id)
        return _system_down("deleting availability")
    finally:
        db.close()


@app.post("/v1/listings/{listing_id}/reconcile", dependencies=[Depends(require_host_api_key)])
async def reconcile_listing(listing_id: int) -> JSONResponse:
    db = SessionLocal()
    try:
        removed = reconcile(AvailabilityUnitOfWork(db), listing_id)
        return JSONResponse(content={"ok": True, "data": {"removed_window_ids": removed}})
    except AvailabilityError as exc:
        return _error_response(exc)
    except Exception:
        logger.exception("Failed reconciling listing_id=%s", listing_id)
        return _system_down("reconciling availability")
    finally:
        db.close()
