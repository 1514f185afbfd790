from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class ConvertOptionsModel(BaseModel):
    sheet: Optional[Union[int, str]] = Field(default=None, examples=["Sheet1", 1])
    delimiter: str = Field(default=",", min_length=1)
    force_quotes: Optional[bool] = None
    fill_merges: bool = False
    header_row: Optional[int] = Field(default=None, ge=1)
    skip_pattern: Optional[str] = None
    columns: Optional[List[str]] = None
    name_blank_headers: bool = False


class ConvertRequest(ConvertOptionsModel):
    data: str = Field(description="Base64 XLSX, optionally as a data: URI")
    response: Literal["base64", "text"] = "base64"


class ReportItem(BaseModel):
    row: Optional[int] = None
    column: Optional[str] = None
    issue: str
    value: Optional[str] = None
    action: str


class ConversionReport(BaseModel):
    sheet: str
    strategy: str
    header_row: Optional[int] = None
    header_detected: bool = False
    bounds: Optional[Dict[str, str]] = None
    rows: int = 0
    columns: int = 0
    rows_dropped_blank: int = 0
    rows_skipped: int = 0
    warnings: List[ReportItem] = Field(default_factory=list)


class ConvertResponse(BaseModel):
    mime_type: str = Field(default="text/csv")
    data: str
    sha256: str
    report: ConversionReport


class SheetsRequest(BaseModel):
    data: str


class SheetInfo(BaseModel):
    name: str
    used_range: Optional[str] = None
    preview: List[List[str]] = Field(default_factory=list)


class SheetsResponse(BaseModel):
    sheets: List[SheetInfo]


class ErrorResponse(BaseModel):
    error: str
    detail: str
    details: Optional[Dict[str, Any]] = None


class HealthResponse(BaseModel):
    ok: bool = True
