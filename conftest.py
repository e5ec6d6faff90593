"""
Pytest configuration file.

This file is automatically loaded by pytest and provides global test configuration.
It puts the project root on the Python path so the modules import as they do
when the app runs, and points the app's log and database paths at a
temporary directory before ``main`` is imported.
"""
import os
import sys
import tempfile

# Add the current directory to the Python path
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

_scratch = tempfile.mkdtemp(prefix="excel-import-tests-")
os.environ.setdefault("EXCEL_LOG_DIR", os.path.join(_scratch, "logs"))
os.environ.setdefault("EXCEL_DB_PATH", os.path.join(_scratch, "records.db"))
