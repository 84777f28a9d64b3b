"""
Tests for configuration, logging and error handling infrastructure.
"""

import json

import pytest
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError as SQLIntegrityError
from sqlalchemy.exc import OperationalError

from qapture.domain.schemas import CatalogInput, validate_input
from qapture.infrastructure import db
from qapture.infrastructure.config import (
    DatabaseConfig,
    LoggingConfig,
    ReportingConfig,
    ScoringConfig,
    get_settings,
    load_settings_from_file,
    override_settings,
    reset_settings,
)
from qapture.infrastructure.exceptions import (
    ConfigurationError,
    ConnectionError,
    DatabaseError,
    IntegrityError,
    QaptureError,
    RecordNotFoundError,
    SchemaNotFoundError,
    ValidationError,
    create_user_friendly_error_message,
    handle_database_error,
    log_error_details,
)
from qapture.infrastructure.logging import (
    LogContext,
    clear_context,
    configure_logging,
    context_filter,
    get_logger,
    log_database_operation,
    log_operation,
    set_context,
    setup_logging,
)


@pytest.fixture(autouse=True)
def fresh_settings():
    reset_settings()
    yield
    reset_settings()


class TestConfiguration:
    def test_sqlite_url_and_suffix(self):
        config = DatabaseConfig(backend="sqlite", sqlite_path="./data/qapture")
        assert config.sqlite_path == "data/qapture.db"
        assert config.get_connection_url() == "sqlite:///data/qapture.db"
        assert DatabaseConfig(sqlite_path=":memory:").get_connection_url() == "sqlite:///:memory:"

    def test_mysql_url(self):
        config = DatabaseConfig(
            backend="mysql", mysql_host="db", mysql_user="qa", mysql_password="", mysql_database="qapture"
        )
        assert config.get_connection_url() == "mysql+pymysql://qa@db:3306/qapture?charset=utf8mb4"

    def test_mysql_requires_host(self):
        with pytest.raises(PydanticValidationError):
            DatabaseConfig(backend="mysql", mysql_host="")

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("REPORT_ANONYMIZED_DOMAIN", "example.org")
        monkeypatch.setenv("CACHE_CATALOG_TTL_SECONDS", "0")
        settings = get_settings()

        assert settings.reporting.anonymized_domain == "example.org"
        assert settings.cache.catalog_ttl_seconds == 0
        assert get_settings() is settings

    def test_override_settings_resets_cache(self, monkeypatch):
        monkeypatch.setenv("APP_ENVIRONMENT", "development")
        before = get_settings()
        after = override_settings(app_environment="testing")

        assert after is not before
        assert after.is_testing()
        assert after.get_environment_info()["environment"] == "testing"

    def test_load_settings_from_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("REPORT_ANONYMIZED_DOMAIN", "verbaneum.de")
        monkeypatch.setenv("REPORT_HISTOGRAM_BOUNDS", "[50, 70, 80, 90, 100]")
        path = tmp_path / "settings.json"
        path.write_text(
            json.dumps({"report": {"anonymized_domain": "example.org", "histogram_bounds": [40, 60, 100]}}),
            encoding="utf-8",
        )

        settings = load_settings_from_file(str(path))
        assert settings.reporting.anonymized_domain == "example.org"
        assert settings.reporting.histogram_bounds == [40.0, 60.0, 100.0]

        unsupported = tmp_path / "settings.txt"
        unsupported.write_text("anonymized_domain=example.org", encoding="utf-8")
        with pytest.raises(ValueError):
            load_settings_from_file(str(unsupported))
        with pytest.raises(FileNotFoundError):
            load_settings_from_file(str(tmp_path / "missing.json"))

    def test_missing_driver_is_a_configuration_error(self, monkeypatch):
        def missing_driver(*args, **kwargs):
            raise ModuleNotFoundError("No module named 'pymysql'")

        monkeypatch.setattr(db, "create_engine", missing_driver)
        with pytest.raises(ConfigurationError) as exc_info:
            db.create_database_engine(DatabaseConfig(backend="mysql"))
        assert exc_info.value.config_key == "DB_BACKEND"

    def test_production_forbids_debug(self):
        from qapture.infrastructure.config import ApplicationConfig

        with pytest.raises(PydanticValidationError):
            ApplicationConfig(environment="production", debug=True)

    def test_histogram_bounds_must_increase(self):
        with pytest.raises(PydanticValidationError):
            ReportingConfig(histogram_bounds=[50, 40])
        assert ReportingConfig(truthy_values=[" JA ", ""]).truthy_values == ["ja"]

    def test_name_map_file_replaces_inline_map(self, tmp_path):
        path = tmp_path / "names.json"
        path.write_text(json.dumps({"Alt": "Neu"}), encoding="utf-8")

        assert ScoringConfig(name_map_path=str(path)).catalog_name_map == {"Alt": "Neu"}
        with pytest.raises(PydanticValidationError):
            ScoringConfig(name_map_path=str(tmp_path / "missing.json"))


class TestErrorHandling:
    def test_validation_error_messages(self):
        error = ValidationError("team_name", "cannot be empty", "")

        assert error.field == "team_name"
        assert "cannot be empty" in str(error)
        assert error.user_message == "Invalid team name: cannot be empty"
        assert create_user_friendly_error_message(error) == error.user_message

    def test_generic_errors_get_friendly_messages(self):
        assert "try again" in create_user_friendly_error_message(RuntimeError("boom")).lower()
        assert "missing" in create_user_friendly_error_message(KeyError("x")).lower()

    def test_handle_database_error_mapping(self):
        unique = SQLIntegrityError("stmt", {}, Exception("UNIQUE constraint failed: dimensions.name"))
        foreign = SQLIntegrityError("stmt", {}, Exception("FOREIGN KEY constraint failed"))
        lost = OperationalError("stmt", {}, Exception("connection refused"))

        assert isinstance(handle_database_error(unique, "save"), IntegrityError)
        assert "unique constraint" in handle_database_error(unique).user_message.lower()
        assert handle_database_error(foreign).constraint == "foreign_key"
        assert isinstance(handle_database_error(lost), ConnectionError)

        other = handle_database_error(RuntimeError("disk full"), "commit")
        assert type(other) is DatabaseError
        assert other.operation == "commit"

    def test_catalog_errors_carry_names(self):
        error = SchemaNotFoundError("Telefonie - Inbound", "Bewertung Inbound")
        assert error.catalog_name == "Telefonie - Inbound"
        assert error.details["resolved_name"] == "Bewertung Inbound"
        assert isinstance(error, QaptureError)

        missing = RecordNotFoundError("Submission", 7)
        assert missing.user_message == "The selected submission could not be found."

    def test_log_error_details(self):
        details = log_error_details(ValidationError("color", "bad"), {"operation": "save"})
        assert details["error_type"] == "ValidationError"
        assert details["context"] == {"operation": "save"}
        assert details["error_details"]["field"] == "color"

    def test_validate_input_collects_field_errors(self):
        result = validate_input(CatalogInput, {"name": "", "json_data": "{oops"})
        assert result.success is False
        assert {e.field for e in result.errors} >= {"name", "json_data"}


class TestLogging:
    @pytest.fixture(autouse=True)
    def quiet_logging(self, monkeypatch):
        monkeypatch.setenv("APP_ENVIRONMENT", "testing")
        yield
        reset_settings()
        configure_logging()

    def test_logger_names_are_namespaced(self):
        assert get_logger("scoring").name == "qapture.scoring"
        assert get_logger("qapture.domain.services").name == "qapture.domain.services"

    def test_file_logging_writes_structured_lines(self, tmp_path):
        log_file = tmp_path / "logs" / "qapture.log"
        setup_logging(LoggingConfig(level="INFO", file_path=str(log_file), console_enabled=False))
        with LogContext(catalog="Bewertung Inbound"):
            get_logger("test").info("Index built")

        entry = json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])
        assert entry["message"] == "Index built"
        assert entry["logger"] == "qapture.test"
        assert entry["catalog"] == "Bewertung Inbound"

    def test_file_handler_follows_logging_settings(self, tmp_path):
        config = LoggingConfig(file_path=str(tmp_path / "qapture.log"), max_bytes=2048, backup_count=2)

        handler = config.get_file_handler_config()
        assert handler["maxBytes"] == 2048
        assert handler["backupCount"] == 2
        assert LoggingConfig().get_file_handler_config() is None

    def test_testing_environment_keeps_only_warnings(self, monkeypatch, tmp_path):
        monkeypatch.setenv("LOG_FILE_PATH", str(tmp_path / "qapture.log"))
        config = configure_logging(get_settings())

        assert config.level == "WARNING"
        assert config.file_path is None
        assert not (tmp_path / "qapture.log").exists()

    def test_log_context_restores_previous_context(self):
        clear_context()
        set_context(team="SDK Inbound", submission_id=None)
        assert context_filter.context == {"team": "SDK Inbound"}
        with LogContext(operation="build_dashboard", team="SDK Outbound"):
            assert context_filter.context == {"team": "SDK Outbound", "operation": "build_dashboard"}
        assert context_filter.context == {"team": "SDK Inbound"}
        clear_context()
        assert context_filter.context == {}

    def test_log_operation_reraises(self):
        @log_operation("explode")
        def explode():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            explode()
        assert explode.__name__ == "explode"

    def test_application_errors_are_logged_as_warnings(self, tmp_path):
        log_file = tmp_path / "qapture.log"

        @log_operation("record_submission")
        def record():
            raise SchemaNotFoundError("Verschollen")

        setup_logging(LoggingConfig(level="INFO", file_path=str(log_file), console_enabled=False))
        with pytest.raises(SchemaNotFoundError):
            record()

        entry = json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])
        assert entry["level"] == "WARNING"
        assert entry["operation"] == "record_submission"
        assert entry["error_type"] == "SchemaNotFoundError"
        assert "exception" not in entry

    def test_database_operations_report_duration(self, tmp_path):
        log_file = tmp_path / "qapture.log"

        @log_database_operation("catalog.list_active")
        def list_active():
            return []

        setup_logging(LoggingConfig(level="DEBUG", file_path=str(log_file), console_enabled=False))
        assert list_active() == []

        entry = json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])
        assert entry["operation"] == "db.catalog.list_active"
        assert entry["duration_ms"] >= 0
