import base64
import binascii
import hashlib
import logging
import re
from typing import List, Optional

from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from .config import settings
from .errors import ConversionError, InvalidPayload, PayloadTooLarge
from .models import (
    ConvertOptionsModel,
    ConvertRequest,
    ConvertResponse,
    ErrorResponse,
    HealthResponse,
    SheetsRequest,
    SheetsResponse,
)
from .pipeline import ConversionOptions, ConversionPipeline
from .rules import OUTPUT_ENCODING

logging.basicConfig(
    level=settings.log_level_int,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

DATA_URI_PREFIX = re.compile(r"^data:.*?;base64,")
WHITESPACE = re.compile(r"\s+")
XLSX_SUFFIXES = (".xlsx", ".xlsm")
CSV_MEDIA_TYPE = "text/csv; charset=utf-8"

app = FastAPI(
    title="xlsx-normalizer",
    description="Deterministic XLSX to CSV normalization for automation pipelines",
    version="0.1.0",
)

_pipeline = ConversionPipeline(settings)


def get_pipeline() -> ConversionPipeline:
    return _pipeline


@app.exception_handler(ConversionError)
async def conversion_error_handler(request: Request, exc: ConversionError) -> JSONResponse:
    if isinstance(exc, PayloadTooLarge):
        status_code = 413
    elif exc.client_error:
        status_code = 400
    else:
        status_code = 500
        logger.error("conversion failed on %s: %s", request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def _sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def decode_payload(data: str) -> bytes:
    """Strip an optional data: URI prefix, enforce the size limit, base64-decode."""
    b64 = DATA_URI_PREFIX.sub("", data.strip(), count=1)
    # MIME encoders wrap lines
    b64 = WHITESPACE.sub("", b64)
    if not b64:
        raise InvalidPayload('Missing "data" (base64 XLSX) in request body')
    if len(b64) * 3 // 4 > settings.max_payload_bytes:
        raise PayloadTooLarge(f"Payload exceeds {settings.max_payload_mb} MB")
    try:
        return base64.b64decode(b64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidPayload('Invalid base64 in "data"') from exc


def _options(body: ConvertOptionsModel) -> ConversionOptions:
    return ConversionOptions(
        sheet=body.sheet,
        delimiter=body.delimiter,
        force_quotes=body.force_quotes,
        fill_merges=body.fill_merges,
        header_row=body.header_row,
        skip_pattern=body.skip_pattern,
        columns=tuple(body.columns) if body.columns else None,
        name_blank_headers=body.name_blank_headers,
    )


@app.get("/health", response_model=HealthResponse)
def health():
    return {"ok": True}


@app.get("/healthz", response_class=PlainTextResponse)
def healthz():
    return "ok"


@app.post(
    "/convert",
    response_model=ConvertResponse,
    responses={400: {"model": ErrorResponse}, 413: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def convert(body: ConvertRequest, pipeline: ConversionPipeline = Depends(get_pipeline)):
    raw = decode_payload(body.data)
    result = pipeline.convert(raw, _options(body))

    if body.response == "text":
        return Response(content=result.csv, media_type=CSV_MEDIA_TYPE)

    encoded = result.csv.encode(OUTPUT_ENCODING)
    return {
        "mime_type": result.mime_type,
        "data": base64.b64encode(encoded).decode("ascii"),
        "sha256": _sha256_hex(encoded),
        "report": result.report,
    }


@app.post("/convert/file", responses={400: {"model": ErrorResponse}, 413: {"model": ErrorResponse}})
async def convert_file(
    file: UploadFile = File(...),
    sheet: Optional[str] = Query(default=None),
    delimiter: str = Query(default=",", min_length=1),
    force_quotes: Optional[bool] = Query(default=None),
    fill_merges: bool = Query(default=False),
    header_row: Optional[int] = Query(default=None, ge=1),
    skip_pattern: Optional[str] = Query(default=None),
    columns: Optional[List[str]] = Query(default=None),
    name_blank_headers: bool = Query(default=False),
    pipeline: ConversionPipeline = Depends(get_pipeline),
):
    if not (file.filename or "").lower().endswith(XLSX_SUFFIXES):
        raise HTTPException(status_code=422, detail="Only XLSX files are supported")

    raw = await file.read()
    if len(raw) > settings.max_payload_bytes:
        raise PayloadTooLarge(f"Payload exceeds {settings.max_payload_mb} MB")

    options = ConversionOptions(
        sheet=sheet,
        delimiter=delimiter,
        force_quotes=force_quotes,
        fill_merges=fill_merges,
        header_row=header_row,
        skip_pattern=skip_pattern,
        columns=tuple(columns) if columns else None,
        name_blank_headers=name_blank_headers,
    )
    result = await run_in_threadpool(pipeline.convert, raw, options)
    return Response(content=result.csv, media_type=CSV_MEDIA_TYPE)


@app.post("/sheets", response_model=SheetsResponse, responses={400: {"model": ErrorResponse}})
def list_sheets(body: SheetsRequest, pipeline: ConversionPipeline = Depends(get_pipeline)):
    raw = decode_payload(body.data)
    return {"sheets": pipeline.list_sheets(raw)}
