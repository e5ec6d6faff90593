"""
Excel Import Application

This package provides an API that checks uploaded spreadsheets against a
fixed Name/Amount/Date/Verified schema and imports the accepted rows.

Key modules:
- main.py: FastAPI application with API endpoints
- excel_file_process.py: Workbook decoding and the validation pipeline
- validation/: Normalizer, structural checks, row rules and finding grouping
- transport.py: API client with local pre-check and failure messages
- storage.py / pending.py: Record store and validation-token hand-off
- utils/result.py: Result pattern implementation for error handling
"""
