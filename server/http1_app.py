"""HTTP/1.1 baseline server exposing the same transfer contract via FastAPI."""

import time

from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse, StreamingResponse

from common.constants import OCTET_STREAM
from common.exceptions import RequestValidationError, ShortTransferError
from common.logging_config import get_logger
from common.transfer import TransferGenerator, TransferSink, chunk_bytes
from server.handlers import parse_transfer_size

logger = get_logger(__name__)

app = FastAPI(
    title="h2perf HTTP/1.1 server",
    description="Synthetic download/upload endpoints for throughput baselines",
    version="1.0.0"
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Middleware to log every request with its status and duration.
    """
    start_time = time.time()

    response = await call_next(request)

    duration = time.time() - start_time
    logger.info(
        f"{request.method} {request.url.path} status={response.status_code} "
        f"duration={duration:.3f}s proto=http/1.1"
    )
    return response


@app.exception_handler(RequestValidationError)
async def invalid_size_handler(request: Request, exc: RequestValidationError):
    logger.info(f"Rejected {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": str(exc), "code": "INVALID_TRANSFER_SIZE"}
    )


@app.exception_handler(ShortTransferError)
async def short_transfer_handler(request: Request, exc: ShortTransferError):
    logger.warning(f"{request.method} {request.url.path} aborted: {exc}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": str(exc), "code": "SHORT_TRANSFER"},
        headers={"Connection": "close"}
    )


async def _zero_stream(count: int):
    for chunk in TransferGenerator(count):
        yield chunk_bytes(chunk)


@app.get("/{size}")
async def download(size: str):
    """
    Stream ``size`` zero bytes with an exact Content-Length.

    Raises:
        - 400: Zero or unparseable size
    """
    count = parse_transfer_size(f"/{size}")
    return StreamingResponse(
        _zero_stream(count),
        media_type=OCTET_STREAM,
        headers={"Content-Length": str(count)}
    )


@app.put("/{size}", status_code=status.HTTP_204_NO_CONTENT)
async def upload(size: str, request: Request):
    """
    Consume ``size`` bytes of request body and answer 204.

    Raises:
        - 400: Zero or unparseable size, or a body shorter than ``size``
    """
    count = parse_transfer_size(f"/{size}")
    await TransferSink(count).drain(request.stream())
    return Response(status_code=status.HTTP_204_NO_CONTENT)
