# app/config.py
"""
Centralized configuration management with startup validation.

load_config() is the only place that reads the process environment.
The resulting AppConfig is built once at startup and handed to the
ledger, billing reconciler, identity verifier and generation service.
"""
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Optional

from ledger.models import CancellationUsagePolicy

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

SERVICE_NAME = "jobcraft-api"
SERVICE_VERSION = "0.1.0"

# Default values
DEFAULT_MAX_REQUEST_SIZE_BYTES = 1_048_576  # 1MB
MIN_REQUEST_SIZE_BYTES = 1024  # 1KB minimum
DEFAULT_DB_PATH = os.path.join("data", "jobcraft.db")
DEFAULT_STORE_TIMEOUT_SECONDS = 5
DEFAULT_BILLING_TIMEOUT_SECONDS = 20
DEFAULT_AI_TIMEOUT_SECONDS = 60
DEFAULT_AI_MAX_TOKENS = 1024
DEFAULT_STRIPE_API_VERSION = "2023-10-16"
DEFAULT_ANTHROPIC_MODEL = "claude-3-5-sonnet-20241022"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"

# Sensitive substrings that should never appear in logs
SENSITIVE_SUBSTRINGS = ("key", "token", "secret", "password", "credential", "auth")


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""

    pass


# =============================================================================
# Configuration Dataclass
# =============================================================================


@dataclass
class AppConfig:
    """Application configuration loaded from environment."""

    # Service info
    service_name: str = SERVICE_NAME
    service_version: str = SERVICE_VERSION
    environment: str = "development"

    # HTTP
    max_request_size_bytes: int = DEFAULT_MAX_REQUEST_SIZE_BYTES
    cors_allow_origins: list = field(default_factory=lambda: ["*"])

    # Storage
    db_path: str = DEFAULT_DB_PATH
    store_timeout_seconds: int = DEFAULT_STORE_TIMEOUT_SECONDS

    # Billing (Stripe)
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_api_version: str = DEFAULT_STRIPE_API_VERSION
    stripe_basic_price_id: str = ""
    stripe_premium_price_id: str = ""
    stripe_premium_plus_price_id: str = ""
    checkout_success_url: str = "http://localhost:3000/billing/success?session_id={CHECKOUT_SESSION_ID}"
    checkout_cancel_url: str = "http://localhost:3000/billing/cancel"
    billing_timeout_seconds: int = DEFAULT_BILLING_TIMEOUT_SECONDS
    billing_max_network_retries: int = 2
    cancellation_usage_policy: CancellationUsagePolicy = CancellationUsagePolicy.PRESERVE

    # Identity provider
    auth_jwt_secret: str = ""
    auth_jwt_algorithm: str = "HS256"
    auth_jwt_audience: Optional[str] = None
    auth_jwt_issuer: Optional[str] = None

    # AI providers
    ai_provider: str = "anthropic"
    anthropic_api_key: str = ""
    anthropic_model: str = DEFAULT_ANTHROPIC_MODEL
    openai_api_key: str = ""
    openai_model: str = DEFAULT_OPENAI_MODEL
    ai_max_tokens: int = DEFAULT_AI_MAX_TOKENS
    ai_timeout_seconds: int = DEFAULT_AI_TIMEOUT_SECONDS

    # Warnings collected during config load
    warnings: list = field(default_factory=list)

    @property
    def billing_enabled(self) -> bool:
        return len(self.stripe_secret_key) > 10

    @property
    def ai_api_key(self) -> str:
        if self.ai_provider == "openai":
            return self.openai_api_key
        return self.anthropic_api_key


# =============================================================================
# Configuration Loading
# =============================================================================


def _parse_int_env(
    name: str, default: int, min_value: Optional[int] = None
) -> tuple[int, Optional[str]]:
    """
    Parse an integer environment variable with validation.

    Returns (value, warning_message).
    On invalid input, returns default with a warning.
    """
    raw = os.environ.get(name)
    if raw is None:
        return default, None

    try:
        value = int(raw)
    except ValueError:
        warning = f"{name}='{raw}' is not a valid integer; using default {default}"
        return default, warning

    if min_value is not None and value < min_value:
        warning = f"{name}={value} is below minimum {min_value}; using default {default}"
        return default, warning

    return value, None


def _parse_list_env(name: str, default: list) -> list:
    """Parse a comma-separated environment variable."""
    raw = os.environ.get(name)
    if not raw:
        return default
    items = [item.strip() for item in raw.split(",") if item.strip()]
    return items or default


def _parse_policy_env(name: str) -> tuple[CancellationUsagePolicy, Optional[str]]:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return CancellationUsagePolicy.PRESERVE, None
    try:
        return CancellationUsagePolicy(raw), None
    except ValueError:
        return (
            CancellationUsagePolicy.PRESERVE,
            f"{name}='{raw}' is not one of preserve/reset; using preserve",
        )


def load_config(fail_fast: bool = True) -> AppConfig:
    """
    Load and validate application configuration from environment.

    Args:
        fail_fast: If True, raise ConfigurationError on critical issues.
                   If False, collect warnings and continue.

    Returns:
        AppConfig instance with validated configuration.

    Raises:
        ConfigurationError: If required configuration is missing/invalid
                           and fail_fast is True.
    """
    warnings = []
    errors = []
    env = os.environ.get

    # Environment
    environment = env("RAILWAY_ENVIRONMENT", "development")

    # Integer settings with validation
    int_settings = {}
    for name, default, minimum in (
        ("MAX_REQUEST_SIZE_BYTES", DEFAULT_MAX_REQUEST_SIZE_BYTES, MIN_REQUEST_SIZE_BYTES),
        ("JOBCRAFT_STORE_TIMEOUT_SECONDS", DEFAULT_STORE_TIMEOUT_SECONDS, 1),
        ("STRIPE_TIMEOUT_SECONDS", DEFAULT_BILLING_TIMEOUT_SECONDS, 1),
        ("STRIPE_MAX_NETWORK_RETRIES", 2, 0),
        ("AI_MAX_TOKENS", DEFAULT_AI_MAX_TOKENS, 1),
        ("AI_TIMEOUT_SECONDS", DEFAULT_AI_TIMEOUT_SECONDS, 1),
    ):
        value, warning = _parse_int_env(name, default, min_value=minimum)
        int_settings[name] = value
        if warning:
            warnings.append(warning)

    cancellation_policy, policy_warning = _parse_policy_env("CANCELLATION_USAGE_POLICY")
    if policy_warning:
        warnings.append(policy_warning)

    ai_provider = env("AI_PROVIDER", "anthropic").strip().lower()
    if ai_provider not in ("anthropic", "openai"):
        warnings.append(f"AI_PROVIDER='{ai_provider}' is unknown; using anthropic")
        ai_provider = "anthropic"

    stripe_secret_key = env("STRIPE_SECRET_KEY", "")
    stripe_webhook_secret = env("STRIPE_WEBHOOK_SECRET", "")
    auth_jwt_secret = env("AUTH_JWT_SECRET", "")

    # Billing is optional, but a key without a webhook secret can never reconcile
    if stripe_secret_key and not stripe_webhook_secret:
        warnings.append(
            "STRIPE_SECRET_KEY is set but STRIPE_WEBHOOK_SECRET is not; "
            "webhook deliveries will be rejected"
        )

    if not auth_jwt_secret:
        message = "AUTH_JWT_SECRET is not set; every authenticated endpoint will return 401"
        if environment == "production":
            errors.append(message)
        else:
            warnings.append(message)

    config = AppConfig(
        environment=environment,
        max_request_size_bytes=int_settings["MAX_REQUEST_SIZE_BYTES"],
        cors_allow_origins=_parse_list_env("CORS_ALLOW_ORIGINS", ["*"]),
        db_path=env("JOBCRAFT_DB_PATH", DEFAULT_DB_PATH),
        store_timeout_seconds=int_settings["JOBCRAFT_STORE_TIMEOUT_SECONDS"],
        stripe_secret_key=stripe_secret_key,
        stripe_webhook_secret=stripe_webhook_secret,
        stripe_api_version=env("STRIPE_API_VERSION", DEFAULT_STRIPE_API_VERSION),
        stripe_basic_price_id=env("STRIPE_BASIC_PRICE_ID", ""),
        stripe_premium_price_id=env("STRIPE_PREMIUM_PRICE_ID", ""),
        stripe_premium_plus_price_id=env("STRIPE_PREMIUM_PLUS_PRICE_ID", ""),
        checkout_success_url=env("CHECKOUT_SUCCESS_URL", AppConfig.checkout_success_url),
        checkout_cancel_url=env("CHECKOUT_CANCEL_URL", AppConfig.checkout_cancel_url),
        billing_timeout_seconds=int_settings["STRIPE_TIMEOUT_SECONDS"],
        billing_max_network_retries=int_settings["STRIPE_MAX_NETWORK_RETRIES"],
        cancellation_usage_policy=cancellation_policy,
        auth_jwt_secret=auth_jwt_secret,
        auth_jwt_algorithm=env("AUTH_JWT_ALGORITHM", "HS256"),
        auth_jwt_audience=env("AUTH_JWT_AUDIENCE") or None,
        auth_jwt_issuer=env("AUTH_JWT_ISSUER") or None,
        ai_provider=ai_provider,
        anthropic_api_key=env("CLAUDE_API_KEY") or env("ANTHROPIC_API_KEY", ""),
        anthropic_model=env("ANTHROPIC_MODEL", DEFAULT_ANTHROPIC_MODEL),
        openai_api_key=env("OPENAI_API_KEY", ""),
        openai_model=env("OPENAI_MODEL", DEFAULT_OPENAI_MODEL),
        ai_max_tokens=int_settings["AI_MAX_TOKENS"],
        ai_timeout_seconds=int_settings["AI_TIMEOUT_SECONDS"],
        warnings=warnings,
    )

    if not config.ai_api_key:
        warnings.append(
            f"No API key configured for AI_PROVIDER={ai_provider}; "
            "generation endpoints will return 503"
        )

    # Log warnings
    for warning in warnings:
        logger.warning(f"[CONFIG] {warning}")

    if errors and fail_fast:
        raise ConfigurationError("; ".join(errors))
    for error in errors:
        logger.error(f"[CONFIG] {error}")

    return config


def log_config_snapshot(config: AppConfig) -> str:
    """
    Generate and log a safe configuration snapshot.

    Returns the snapshot string for testing purposes.
    Never logs actual secret values - only boolean presence flags.
    """
    snapshot = (
        f"[STARTUP] service={config.service_name} "
        f"version={config.service_version} "
        f"environment={config.environment} "
        f"max_request_size_bytes={config.max_request_size_bytes} "
        f"db_path={config.db_path} "
        f"billing_enabled={config.billing_enabled} "
        f"stripe_webhook_secret_present={bool(config.stripe_webhook_secret)} "
        f"cancellation_usage_policy={config.cancellation_usage_policy.value} "
        f"jwt_secret_present={bool(config.auth_jwt_secret)} "
        f"ai_provider={config.ai_provider} "
        f"ai_api_key_present={bool(config.ai_api_key)}"
    )
    logger.info(snapshot)
    return snapshot


def validate_config_snapshot_safety(snapshot: str) -> bool:
    """
    Validate that a config snapshot doesn't contain sensitive values.

    Returns True if safe, False if potentially unsafe.
    """
    snapshot_lower = snapshot.lower()

    # We allow "secret_present=" but not "secret=" followed by a value
    for sensitive in SENSITIVE_SUBSTRINGS:
        pattern = rf"{sensitive}=(?!true|false)"
        if re.search(pattern, snapshot_lower):
            return False

    return True
