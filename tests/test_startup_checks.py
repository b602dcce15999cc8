import pytest

from storefront_pay.core import config, startup_checks


def test_sqlite_is_forbidden_in_production(monkeypatch):
    monkeypatch.setattr(config, "IS_PROD", True)
    monkeypatch.setattr(config, "DATABASE_URL", "sqlite:///./prod.db")

    with pytest.raises(RuntimeError):
        startup_checks.validate_database_environment()


def test_postgres_is_accepted_in_production(monkeypatch):
    monkeypatch.setattr(config, "IS_PROD", True)
    monkeypatch.setattr(config, "DATABASE_URL", "postgresql://db/app")

    startup_checks.validate_database_environment()


def test_production_requires_signing_secrets(monkeypatch):
    monkeypatch.setattr(config, "IS_PROD", True)
    monkeypatch.setattr(config, "MP_STATE_SECRET", "")
    monkeypatch.setattr(config, "JWT_SECRET_KEY", "jwt")

    with pytest.raises(RuntimeError, match="MP_STATE_SECRET"):
        startup_checks.validate_payment_settings()


def test_missing_secrets_only_warn_outside_production(monkeypatch):
    monkeypatch.setattr(config, "IS_PROD", False)
    monkeypatch.setattr(config, "MP_STATE_SECRET", "")
    monkeypatch.setattr(config, "JWT_SECRET_KEY", "")

    startup_checks.validate_payment_settings()


def test_migration_check_is_skipped_in_test_env(monkeypatch, tmp_path):
    monkeypatch.setattr(config, "IS_TEST", True)

    startup_checks.ensure_migrations_applied(engine=None, alembic_config_path=tmp_path / "missing.ini")


def test_migration_check_requires_alembic_config(monkeypatch, tmp_path):
    monkeypatch.setattr(config, "IS_TEST", False)

    with pytest.raises(RuntimeError, match="alembic config not found"):
        startup_checks.ensure_migrations_applied(engine=None, alembic_config_path=tmp_path / "missing.ini")
