import sys
from typing import Any

import fastapi
import uvicorn

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from codegate.dependencies import container_dependency
from codegate.errors import CodeGateError
from codegate.logger import get_logger
from codegate.routes import router


logger = get_logger()

ERROR_STATUS = {
    "auth": 401,
    "not_found": 404,
    "conflict": 409,
    "policy_blocked": 409,
    "configuration": 409,
    "rate_limit_or_server": 503,
    "parse": 502,
}

app = FastAPI(title="CodeGate Review")

app.include_router(router)


@app.exception_handler(CodeGateError)
async def _codegate_error_handler(request: Request, exc: CodeGateError) -> JSONResponse:
    logger.warning(f"{request.method} {request.url.path} failed ({exc.kind}): {exc}")
    return JSONResponse(
        status_code=ERROR_STATUS.get(exc.kind, 502),
        content={"error_kind": exc.kind, "message": str(exc), "hint": exc.hint},
    )


@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "status": "ok",
        "environment": {
            "python version": sys.version,
            "fastapi version": fastapi.__version__,
            "uvicorn version": uvicorn.__version__,
        },
    }


@app.on_event("shutdown")
async def _close_clients() -> None:
    await container_dependency().aclose()
