import io
import dataclasses
import inspect
import pytest
import pandas as pd
from datetime import datetime, timedelta, timezone
from unittest.mock import patch, MagicMock
from fastapi import status
from fastapi.testclient import TestClient

# Import the app module
import main
from main import app
from pending import PendingImportStore
from storage import InsertOutcome, SQLiteDocumentStore

XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# Create TestClient for FastAPI app testing
client = TestClient(app)


def make_workbook(rows, sheet_name="Sheet1"):
    """
    Build an in-memory single-sheet .xlsx file.

    Args:
        rows: List of row dicts
        sheet_name: Name of the sheet

    Returns:
        bytes: The workbook contents
    """
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        pd.DataFrame(rows).to_excel(writer, sheet_name=sheet_name, index=False)
    return buffer.getvalue()


def upload(path, content, filename="data.xlsx", content_type=XLSX_TYPE):
    return client.post(path, files={"file": (filename, content, content_type)})


@pytest.fixture
def good_rows():
    """
    Fixture providing rows that pass every rule.

    Returns:
        list: Two valid rows
    """
    return [
        {"Name": "Alice", "Amount": 50, "Date": "2024-01-05", "Verified": "Yes"},
        {"Name": "Bob", "Amount": 75, "Date": "2024-02-10", "Verified": "No"},
    ]


@pytest.fixture
def store(tmp_path):
    """
    Fixture swapping the app's record store for one in a temporary directory.

    Args:
        tmp_path: pytest temporary directory

    Yields:
        SQLiteDocumentStore: The store the app writes to during the test
    """
    test_store = SQLiteDocumentStore(str(tmp_path / "records.db"))
    with patch.object(main, 'record_store', test_store):
        yield test_store


@pytest.fixture
def pending():
    """
    Fixture giving the app a fresh token store.

    Yields:
        PendingImportStore: The store the app issues tokens from
    """
    test_pending = PendingImportStore(ttl_seconds=60)
    with patch.object(main, 'pending_imports', test_pending):
        yield test_pending


class TestHealth:
    """
    Tests for the health endpoint.
    """

    def test_reports_healthy_with_database(self, store):
        """
        Test that /api/health reports the database as reachable.

        Args:
            store: Fixture providing a temporary record store
        """
        response = client.get("/api/health")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert data["dbConnection"] is True
        assert "timestamp" in data


class TestUploadRoutes:
    """
    Tests for how the upload routes are declared.
    """

    @pytest.mark.parametrize("route", [main.preview_upload, main.validate_upload], ids=["preview", "validate"])
    def test_upload_routes_run_in_threadpool(self, route):
        """
        Test that workbook decoding routes are plain functions, so they do not block the event loop.

        Args:
            route: Endpoint function under test
        """
        assert not inspect.iscoroutinefunction(route)


class TestPreviewEndpoint:
    """
    Tests for /api/upload/preview.
    """

    def test_preview_returns_normalized_rows_and_grouped_errors(self, good_rows):
        """
        Test that the preview shows normalized rows and column-prefixed findings.

        Args:
            good_rows: Fixture providing valid rows
        """
        rows = [good_rows[0], dict(good_rows[1], Amount=-3)]

        response = upload("/api/upload/preview", make_workbook(rows))

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["success"] is False
        assert data["rowCount"] == 2
        assert data["sheets"]["Sheet1"][0]["Verified"] is True
        assert data["sheets"]["Sheet1"][1]["Verified"] is False
        assert data["sheets"]["Sheet1"][0]["Date"] == "2024-01-05"
        assert data["errors"] == {
            "Sheet1": [{
                "row": 2,
                "column": "Amount",
                "message": "Amount: Amount must be positive",
                "sheetName": "Sheet1",
                "severity": "error",
            }]
        }

    def test_preview_of_clean_file_succeeds(self, good_rows):
        """
        Test that a clean file previews with no findings.

        Args:
            good_rows: Fixture providing valid rows
        """
        response = upload("/api/upload/preview", make_workbook(good_rows))

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["success"] is True
        assert response.json()["errors"] == {}

    def test_preview_rejects_wrong_extension(self, good_rows):
        """
        Test that the file guard applies to previews too.

        Args:
            good_rows: Fixture providing valid rows
        """
        response = upload("/api/upload/preview", make_workbook(good_rows), filename="data.txt")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {"success": False, "error": "Only Excel files (.xlsx, .xls) are allowed"}


class TestValidateEndpoint:
    """
    Tests for /api/upload/validate.
    """

    def test_valid_file_issues_token(self, good_rows, pending):
        """
        Test that a clean file is accepted and its rows held under a token.

        Args:
            good_rows: Fixture providing valid rows
            pending: Fixture providing a fresh token store
        """
        response = upload("/api/upload/validate", make_workbook(good_rows))

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["success"] is True
        assert data["message"] == "File validated successfully"
        assert data["rowCount"] == 2
        assert data["expiresIn"] == main.settings.pending_ttl_seconds
        assert data["warnings"] == []
        assert len(pending) == 1

    def test_row_errors_return_400_with_findings(self, good_rows, pending):
        """
        Test that rule violations are returned with errors first and no token.

        Args:
            good_rows: Fixture providing valid rows
            pending: Fixture providing a fresh token store
        """
        rows = [dict(good_rows[0], Amount=5_000_000), dict(good_rows[1], Verified="maybe")]

        response = upload("/api/upload/validate", make_workbook(rows))

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        data = response.json()
        assert data["success"] is False
        assert data["error"] == "Verified must be Yes/No or True/False"
        assert [e["severity"] for e in data["errors"]] == ["error", "warning"]
        assert data["errors"][0]["row"] == 2
        assert data["errors"][0]["sheetName"] == "Sheet1"
        assert len(pending) == 0

    def test_missing_column_returns_422(self, good_rows, pending):
        """
        Test that a missing required column is reported as unprocessable.

        Args:
            good_rows: Fixture providing valid rows
            pending: Fixture providing a fresh token store
        """
        rows = [{k: v for k, v in row.items() if k != "Verified"} for row in good_rows]

        response = upload("/api/upload/validate", make_workbook(rows))

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        data = response.json()
        assert data["error"] == "Missing required columns: Verified"
        assert data["errors"][0]["row"] == 0

    def test_oversized_file_returns_413(self, good_rows, pending):
        """
        Test that the configured size limit is enforced.

        Args:
            good_rows: Fixture providing valid rows
            pending: Fixture providing a fresh token store
        """
        small = dataclasses.replace(main.settings, max_upload_bytes=10)
        with patch.object(main, 'settings', small):
            response = upload("/api/upload/validate", make_workbook(good_rows))

        assert response.status_code == status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
        assert response.json()["success"] is False

    def test_unreadable_file_returns_400(self, pending):
        """
        Test that bytes which are not a workbook are rejected.

        Args:
            pending: Fixture providing a fresh token store
        """
        with patch('excel_file_process.logger'):
            response = upload("/api/upload/validate", b"not a workbook")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"].startswith("Error processing Excel file")

    def test_unexpected_exception_returns_500(self, good_rows):
        """
        Test that an unhandled error becomes a JSON 500 response.

        Args:
            good_rows: Fixture providing valid rows
        """
        failing_client = TestClient(app, raise_server_exceptions=False)
        with patch.object(main.WorkbookProcessor, 'process_upload', side_effect=RuntimeError("disk on fire")), \
             patch.object(main.logger, 'exception'):
            response = failing_client.post(
                "/api/upload/validate",
                files={"file": ("data.xlsx", make_workbook(good_rows), XLSX_TYPE)}
            )

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json() == {"success": False, "error": "disk on fire"}


class TestImportEndpoint:
    """
    Tests for /api/upload/import.
    """

    def test_validate_then_import_persists_rows(self, good_rows, store, pending):
        """
        Test the full flow: validate, import with the token, rows stored.

        Args:
            good_rows: Fixture providing valid rows
            store: Fixture providing a temporary record store
            pending: Fixture providing a fresh token store
        """
        token = upload("/api/upload/validate", make_workbook(good_rows)).json()["token"]

        response = client.post("/api/upload/import", json={"token": token})

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {
            "success": True,
            "message": "Data imported successfully",
            "importedCount": 2,
        }
        records = store.find_all()
        assert [r.name for r in records] == ["Alice", "Bob"]
        assert [r.verified for r in records] == [True, False]
        assert all(r.sheet_name == "Sheet1" for r in records)

    def test_imported_at_is_the_import_time(self, good_rows, store, pending):
        """
        Test that stored rows carry the time of the import call, not of validation.

        Args:
            good_rows: Fixture providing valid rows
            store: Fixture providing a temporary record store
            pending: Fixture providing a fresh token store
        """
        token = upload("/api/upload/validate", make_workbook(good_rows)).json()["token"]
        import_time = datetime.now(timezone.utc) + timedelta(minutes=10)

        with patch('storage._utcnow', return_value=import_time):
            response = client.post("/api/upload/import", json={"token": token})

        assert response.status_code == status.HTTP_200_OK
        assert [r.imported_at for r in store.find_all()] == [import_time, import_time]

    def test_token_is_single_use(self, good_rows, store, pending):
        """
        Test that a token cannot be redeemed twice.

        Args:
            good_rows: Fixture providing valid rows
            store: Fixture providing a temporary record store
            pending: Fixture providing a fresh token store
        """
        token = upload("/api/upload/validate", make_workbook(good_rows)).json()["token"]
        client.post("/api/upload/import", json={"token": token})

        response = client.post("/api/upload/import", json={"token": token})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"] == "No validated data found. Please upload and validate a file first."
        assert store.count() == 2

    def test_unknown_token_is_rejected(self, store, pending):
        """
        Test that a token that was never issued is refused.

        Args:
            store: Fixture providing a temporary record store
            pending: Fixture providing a fresh token store
        """
        response = client.post("/api/upload/import", json={"token": "nope"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["success"] is False

    def test_partial_failure_reports_counts(self, good_rows, pending):
        """
        Test that failed inserts are reported as an aggregate count.

        Args:
            good_rows: Fixture providing valid rows
            pending: Fixture providing a fresh token store
        """
        token = upload("/api/upload/validate", make_workbook(good_rows)).json()["token"]
        failing_store = MagicMock()
        failing_store.insert_many.return_value = InsertOutcome(inserted=1, failed=1)

        with patch.object(main, 'record_store', failing_store), patch.object(main.logger, 'error'):
            response = client.post("/api/upload/import", json={"token": token})

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json() == {
            "success": False,
            "error": "Failed to import 1 of 2 rows",
            "importedCount": 1,
            "failedCount": 1,
        }

    def test_missing_token_is_a_request_error(self):
        """
        Test that a body without a token fails request validation.
        """
        response = client.post("/api/upload/import", json={})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
