"""Unit tests for configuration management."""

import pytest

from smartcommerce.config import (
    AppConfig,
    ConfigError,
    EmailConfig,
    JWTConfig,
    LoggingConfig,
    RedisConfig,
    SessionConfig,
    _expand_env_vars,
    get_config,
    load_config,
    load_config_file,
    load_config_from_env,
    set_config,
    validate_config,
)


class TestConfigDataClasses:
    """Test configuration data classes."""

    def test_jwt_defaults(self):
        """Access tokens last 15 minutes and carry issuer and audience."""
        config = JWTConfig()
        assert config.secret is None
        assert config.access_token_minutes == 15
        assert config.issuer == "smart-ecommerce-api"
        assert config.audience == "smart-ecommerce-clients"

    def test_session_defaults(self):
        config = SessionConfig()
        assert config.default_max_age == 86400
        assert config.remember_me_max_age == 7 * 86400
        assert config.remember_me_token_ttl == 30 * 86400

    def test_logging_defaults(self):
        config = LoggingConfig()
        assert config.level == "INFO"
        assert config.format == "human"
        assert config.file is None

    def test_from_dict(self):
        """Test creating config from dictionary."""
        config = AppConfig.from_dict(
            {
                "environment": "production",
                "redis": {"url": "redis://cache:6379/1", "command_timeout": 1.5},
                "login_security": {"max_attempts": 3},
            }
        )
        assert config.is_production
        assert config.redis == RedisConfig(url="redis://cache:6379/1", command_timeout=1.5)
        assert config.login_security.max_attempts == 3
        assert config.otp.max_per_hour == 3

    def test_from_dict_rejects_unknown_keys(self):
        with pytest.raises(ConfigError, match="redis"):
            AppConfig.from_dict({"redis": {"host": "localhost"}})

    def test_cookie_secure_follows_environment(self):
        assert AppConfig(environment="production").cookie_secure is True
        assert AppConfig(environment="development").cookie_secure is False
        assert AppConfig(session=SessionConfig(cookie_secure=True)).cookie_secure is True


class TestEnvVarExpansion:
    def test_braced_and_bare(self, monkeypatch):
        monkeypatch.setenv("SC_TEST_SECRET", "s3cret")
        assert _expand_env_vars({"a": "${SC_TEST_SECRET}", "b": ["$SC_TEST_SECRET"]}) == {
            "a": "s3cret",
            "b": ["s3cret"],
        }

    def test_unknown_variable_is_left_alone(self, monkeypatch):
        monkeypatch.delenv("SC_TEST_MISSING", raising=False)
        assert _expand_env_vars("${SC_TEST_MISSING}") == "${SC_TEST_MISSING}"


class TestLoadConfigFromEnv:
    def test_sections(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "Production")
        monkeypatch.setenv("VERIFICATION_REQUIRED", "false")
        monkeypatch.setenv("CORS_ORIGINS", "https://shop.example.com, https://admin.example.com")
        monkeypatch.setenv("LOGIN_MAX_ATTEMPTS", "7")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        config = load_config_from_env()

        assert config["environment"] == "production"
        assert config["verification_required"] is False
        assert config["cors_origins"] == ["https://shop.example.com", "https://admin.example.com"]
        assert config["login_security"] == {"max_attempts": 7}
        assert config["logging"]["level"] == "DEBUG"

    def test_postgres_url_gets_async_driver(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db:5432/shop")
        assert load_config_from_env()["database"]["url"] == "postgresql+asyncpg://u:p@db:5432/shop"

    def test_unparseable_value_is_ignored(self, monkeypatch):
        monkeypatch.setenv("OTP_MAX_PER_HOUR", "three")
        assert "otp" not in load_config_from_env()

    def test_email_settings(self, monkeypatch):
        monkeypatch.setenv("EMAIL_API_KEY", "re_live_key")
        monkeypatch.setenv("FRONTEND_URL", "https://shop.example.com")

        email = load_config_from_env()["email"]

        assert email == {"api_key": "re_live_key", "frontend_url": "https://shop.example.com"}


class TestLoadConfig:
    def test_file_then_env(self, tmp_path, monkeypatch):
        config_file = tmp_path / "smartcommerce.yaml"
        config_file.write_text(
            "otp:\n  max_per_hour: 5\nlogin_security:\n  max_attempts: 9\n",
            encoding="utf-8",
        )
        monkeypatch.setenv("LOGIN_MAX_ATTEMPTS", "4")

        config = load_config(config_file)

        assert config.otp.max_per_hour == 5
        assert config.login_security.max_attempts == 4

    def test_without_env(self, tmp_path):
        config_file = tmp_path / "smartcommerce.yaml"
        config_file.write_text("environment: production\n", encoding="utf-8")
        assert load_config(config_file, use_env=False).environment == "production"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config_file(tmp_path / "nope.yaml")

    def test_non_mapping_file(self, tmp_path):
        config_file = tmp_path / "list.yaml"
        config_file.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="mapping"):
            load_config_file(config_file)

    def test_empty_file(self, tmp_path):
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("", encoding="utf-8")
        assert load_config_file(config_file) == {}


class TestValidateConfig:
    def test_defaults_only_warn(self):
        warnings = validate_config(AppConfig())
        assert any("JWT_SECRET not set" in w for w in warnings)
        assert any("SMS gateway" in w for w in warnings)
        assert any("Email provider" in w for w in warnings)

    def test_invalid_environment(self):
        with pytest.raises(ConfigError, match="Invalid environment"):
            validate_config(AppConfig(environment="staging"))

    def test_production_needs_secret(self):
        with pytest.raises(ConfigError, match="JWT_SECRET"):
            validate_config(AppConfig(environment="production"))

    def test_short_secret_warns(self):
        warnings = validate_config(AppConfig(jwt=JWTConfig(secret="short")))
        assert any("shorter than 32" in w for w in warnings)

    def test_non_positive_values(self):
        with pytest.raises(ConfigError, match="session.default_max_age"):
            validate_config(AppConfig(session=SessionConfig(default_max_age=0)))

    def test_email_expiry_must_be_positive(self):
        with pytest.raises(ConfigError, match="email.reset_expiry_seconds"):
            validate_config(AppConfig(email=EmailConfig(reset_expiry_seconds=0)))

    def test_strength_score_range(self):
        config = AppConfig()
        config.password_policy.min_strength_score = 5
        with pytest.raises(ConfigError, match="min_strength_score"):
            validate_config(config)

    def test_delay_bounds(self):
        config = AppConfig()
        config.login_security.base_delay_ms = 20000
        with pytest.raises(ConfigError, match="base_delay_ms"):
            validate_config(config)

    def test_log_format(self):
        with pytest.raises(ConfigError, match="logging.format"):
            validate_config(AppConfig(logging=LoggingConfig(format="xml")))


class TestGlobalConfig:
    def test_set_config(self):
        custom = AppConfig(environment="testing")
        set_config(custom)
        assert get_config() is custom

    def test_loads_from_environment(self):
        config = get_config()
        assert config.is_testing
        assert config.jwt.secret == "test-secret-key-for-jwt-signing-0123456789"
