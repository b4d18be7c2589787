"""HTTP surface for on-demand diagnostics."""

from __future__ import annotations

import logging

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from diagnostics import load_snapshot
from kv_store import KeyValueStore, StoreError, store_from_env
from worker import handle_diagnostic_request

logger = logging.getLogger(__name__)

app = FastAPI(title="Article Watch Diagnostics", version="1.0")


@app.exception_handler(StoreError)
async def store_unavailable(request: Request, exc: StoreError):
    logger.error("Store unavailable for %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": "Store unavailable", "details": str(exc)})


def get_store() -> KeyValueStore:
    try:
        return store_from_env()
    except RuntimeError as exc:
        # Misconfigured backend (unknown KV_BACKEND, missing CF_* settings).
        raise StoreError(str(exc)) from exc


@app.get("/health")
def health():
    return {"ok": True, "version": "1.0"}


@app.get("/debug")
def debug(store: KeyValueStore = Depends(get_store)):
    status_code, body = handle_diagnostic_request(store)
    return JSONResponse(status_code=status_code, content=body)


@app.get("/debug/last")
def debug_last(store: KeyValueStore = Depends(get_store)):
    return {"ok": True, "snapshot": load_snapshot(store)}
