from fastapi import FastAPI, File, Request, UploadFile, status
import os
import logging
from datetime import datetime, timezone
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from config import load_settings
from excel_file_process import WorkbookProcessor
from pending import PendingImportStore
from storage import SQLiteDocumentStore
from utils.result import Result
from validation import format_findings, has_errors


settings = load_settings()

# Create logs directory if it doesn't exist
os.makedirs(settings.log_dir, exist_ok=True)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Add file handler to write logs to file
log_file_path = os.path.join(settings.log_dir, f"app_{datetime.now().strftime('%Y%m%d')}.log")
file_handler = logging.FileHandler(log_file_path)
file_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
logging.getLogger().addHandler(file_handler)

record_store = SQLiteDocumentStore(settings.db_path)
pending_imports = PendingImportStore(settings.pending_ttl_seconds)


# Initialize FastAPI app with metadata
app = FastAPI(
    title="Excel Import API",
    description="API for validating spreadsheet uploads and importing accepted rows",
    version="2.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


class ImportRequest(BaseModel):
    """
    Body of an import call.

    Attributes:
        token: Handle returned by a successful validation
    """
    token: str


def failure_response(result: Result) -> JSONResponse:
    """Render a failed Result as the API's error payload."""
    return JSONResponse(status_code=result.status_code.value, content=result.to_dict())


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": str(exc) or "Internal server error"}
    )


# API Endpoints
@app.get("/api/health", tags=["Service"])
def health():
    """
    Report service status and whether the record store is reachable.
    """
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "dbConnection": record_store.ping()
    }


@app.post("/api/upload/preview", tags=["Excel Import"])
def preview_upload(file: UploadFile = File(...)):
    """
    Decode an upload and show its normalized rows with every finding.

    Nothing is stored and no import token is issued; this is the interactive
    check run before a file is submitted for validation.

    Returns:
        dict: JSON response with:
            - success: True when no finding blocks the import
            - sheets: Normalized rows keyed by sheet name
            - errors: Findings grouped by sheet, messages prefixed with the column
            - rowCount: Number of data rows across all sheets
    """
    content = file.file.read()
    result = WorkbookProcessor.preview_upload(
        file.filename, file.content_type, content, max_size=settings.max_upload_bytes
    )
    if result.is_failure():
        return failure_response(result)

    report = result.data
    grouped = format_findings(report.findings)
    return {
        "success": not has_errors(report.findings),
        "sheets": report.sheets,
        "errors": {
            sheet: [finding.to_payload() for finding in findings]
            for sheet, findings in grouped.items()
        },
        "rowCount": report.row_count
    }


@app.post("/api/upload/validate", tags=["Excel Import"])
def validate_upload(file: UploadFile = File(...)):
    """
    Authoritatively validate an upload and hold its rows for import.

    Returns:
        dict: On success, ``token`` redeems the rows through /api/upload/import
        before ``expiresIn`` seconds pass. On failure, ``errors`` lists the
        findings with errors first.
    """
    logger.info(f"Validation requested for {file.filename}")
    content = file.file.read()
    result = WorkbookProcessor.process_upload(
        file.filename, file.content_type, content, max_size=settings.max_upload_bytes
    )
    if result.is_failure():
        return failure_response(result)

    report = result.data
    token = pending_imports.issue(report.records)
    return {
        "success": True,
        "message": "File validated successfully",
        "rowCount": len(report.records),
        "token": token,
        "expiresIn": settings.pending_ttl_seconds,
        "warnings": [finding.to_payload() for finding in report.warnings]
    }


@app.post("/api/upload/import", tags=["Excel Import"])
def import_upload(request: ImportRequest):
    """
    Persist the rows held under a validation token.

    A token works once. Failed rows are reported only as a count because
    the bulk insert does not stop at individual failures.
    """
    records = pending_imports.consume(request.token)
    if not records:
        return failure_response(
            Result.invalid_input("No validated data found. Please upload and validate a file first.")
        )

    outcome = record_store.insert_many(records)
    if outcome.failed:
        logger.error(f"Import finished with {outcome.failed} failed rows of {outcome.total}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error": f"Failed to import {outcome.failed} of {outcome.total} rows",
                "importedCount": outcome.inserted,
                "failedCount": outcome.failed
            }
        )

    logger.info(f"Imported {outcome.inserted} rows")
    return {
        "success": True,
        "message": "Data imported successfully",
        "importedCount": outcome.inserted
    }


# Run the application if executed directly
if __name__ == "__main__":
    import uvicorn
    logger.info("Starting Excel Import API in development mode.")
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
