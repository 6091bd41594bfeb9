"""
Tests for the programmatic API.

API functions never raise; every outcome comes back as an OperationResult.
"""
import threading

from unittest.mock import patch

import datapipe
from datapipe import api
from datapipe.core.config import CopyConfig
from datapipe.core.exceptions import StatementError

QUERY = "SELECT id, label, amount FROM orders ORDER BY id"


class TestPackageExports:
    def test_top_level_functions(self):
        assert datapipe.copy_db_to_db is api.copy_db_to_db
        assert datapipe.copy_with_config is api.copy_with_config
        assert callable(datapipe.load_config)


class TestCopyDbToDb:
    """Test copy_db_to_db."""

    def test_success(self, source_url, target_url, target_engine, read_rows, expected_rows):
        result = api.copy_db_to_db(source_url, QUERY, target_url, "orders_copy", batch_size=6, commit_size=12)

        assert result.success, result.message
        assert result.record_count == 23
        assert result.message == "Successfully copied 23 records to table 'orders_copy'"
        assert read_rows(target_engine) == expected_rows

    def test_missing_parameters(self):
        result = api.copy_db_to_db("", "SELECT 1", "sqlite://", "")

        assert not result.success
        assert result.message == "Missing required parameters: source_url, table"

    def test_database_error(self, source_url, target_url):
        result = api.copy_db_to_db(source_url, "SELECT * FROM missing", target_url, "orders_copy")

        assert not result.success
        assert "Source query failed" in result.message
        assert result.error_details == "SELECT * FROM missing"

    def test_invalid_sizes(self, source_url, target_url):
        result = api.copy_db_to_db(source_url, QUERY, target_url, "orders_copy", batch_size=0)

        assert not result.success
        assert "max_row_buf_sz" in result.message

    def test_cancelled(self, source_url, target_url):
        cancel = threading.Event()
        cancel.set()

        result = api.copy_db_to_db(source_url, QUERY, target_url, "orders_copy", cancel_event=cancel)

        assert not result.success
        assert result.message == "Copy operation cancelled"

    def test_arguments_mapped_to_config(self):
        with patch('datapipe.api.copy_with_config') as mock_copy:
            api.copy_db_to_db("sqlite://", "SELECT 1", "sqlite://", "t", schema="main",
                              batch_size=10, commit_size=30, truncate=False, native_copy="never")

        config = mock_copy.call_args.args[0]
        assert config == CopyConfig(
            max_row_buf_sz=10, max_row_tx_commit=30,
            src_db_uri="sqlite://", src_select_sql="SELECT 1",
            dst_db_uri="sqlite://", dst_schema="main", dst_table="t",
            truncate=False, native_copy="never",
        )


class TestCopyWithConfig:
    """Test copy_with_config."""

    def test_existing_connections(self, source_engine, target_engine, read_rows):
        config = CopyConfig(src_select_sql=QUERY, dst_table="orders_copy")

        with source_engine.connect() as src, target_engine.connect() as dst:
            result = api.copy_with_config(config, src_conn=src, dst_conn=dst)

        assert result.success, result.message
        assert result.record_count == 23
        assert len(read_rows(target_engine)) == 23

    def test_datapipe_error_details(self):
        with patch('datapipe.api.core_copy.run', side_effect=StatementError("Insert failed", "table t")):
            result = api.copy_with_config(CopyConfig(dst_table="t"))

        assert result.to_dict() == {
            'success': False,
            'message': 'Insert failed',
            'error_details': 'table t',
        }

    def test_unexpected_error(self):
        with patch('datapipe.api.core_copy.run', side_effect=RuntimeError("boom")):
            result = api.copy_with_config(CopyConfig(dst_table="t"))

        assert not result.success
        assert result.message == "Error during database to database copy: boom"
        assert result.error_details == "RuntimeError"
