"""Connection configuration for the Cloudflare KV namespace.

Reads Cloudflare credentials from CLI args, environment variables,
.env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    CF_ACCOUNT_ID: Cloudflare account ID (required)
    CF_KV_NAMESPACE_ID: Workers KV namespace ID (required)
    CF_API_TOKEN: API token with KV read/write permission (required)
    CF_REQUEST_TIMEOUT: Per-request timeout in seconds (optional, default: 30)
    KV_SYNC_DEBUG: Enable debug logging (optional, default: false)
"""

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class Config:
    account_id: str
    namespace_id: str
    api_token: str
    request_timeout: float = 30.0
    debug: bool = False


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If a credential is empty or the timeout is not positive.
    """
    config.account_id = config.account_id.strip()
    config.namespace_id = config.namespace_id.strip()
    config.api_token = config.api_token.strip()

    if not config.account_id:
        raise ValueError(
            "Cloudflare account ID cannot be empty. Set CF_ACCOUNT_ID environment variable."
        )

    if not config.namespace_id:
        raise ValueError(
            "KV namespace ID cannot be empty. Set CF_KV_NAMESPACE_ID environment variable."
        )

    if not config.api_token:
        raise ValueError(
            "Cloudflare API token cannot be empty. Set CF_API_TOKEN environment variable."
        )

    if config.request_timeout <= 0:
        raise ValueError(
            f"Invalid request timeout {config.request_timeout}: must be greater than 0"
        )


def load_config(
    account_id: str | None = None,
    namespace_id: str | None = None,
    api_token: str | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        account_id: Override account ID (takes precedence over env var and YAML).
        namespace_id: Override namespace ID (takes precedence over env var and YAML).
        api_token: Override API token (takes precedence over env var and YAML).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Dict of values from the YAML config ``cloudflare``
            section. Used as fallback when CLI arg and env var are both unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If a required credential is missing after checking
            all sources, or a numeric value is invalid.
    """
    fb = yaml_fallbacks or {}

    # --- String fields: CLI > env > YAML > error ---

    final_account = (
        account_id or os.getenv("CF_ACCOUNT_ID") or fb.get("account_id")
    )
    if not final_account:
        raise ValueError(
            "Cloudflare account ID not found. Set CF_ACCOUNT_ID environment variable, "
            "pass --account-id CLI argument, or add 'account_id' to config.yml."
        )

    final_namespace = (
        namespace_id
        or os.getenv("CF_KV_NAMESPACE_ID")
        or fb.get("namespace_id")
    )
    if not final_namespace:
        raise ValueError(
            "KV namespace ID not found. Set CF_KV_NAMESPACE_ID environment variable, "
            "pass --namespace-id CLI argument, or add 'namespace_id' to config.yml."
        )

    final_token = api_token or os.getenv("CF_API_TOKEN") or fb.get("api_token")
    if not final_token:
        raise ValueError(
            "Cloudflare API token not found. Set CF_API_TOKEN environment variable, "
            "pass --api-token CLI argument, or add 'api_token' to config.yml."
        )

    # --- Boolean fields: CLI > env > YAML > default ---

    def get_bool_env(key: str) -> bool | None:
        """Return True/False from env var, or None if unset."""
        val = os.getenv(key)
        if val is None:
            return None
        return val.lower() in ("true", "1", "yes", "on")

    if debug:
        final_debug = True
    else:
        env_debug = get_bool_env("KV_SYNC_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    # --- Numeric fields: env > YAML > default ---

    timeout_raw = os.getenv("CF_REQUEST_TIMEOUT")
    if timeout_raw is not None:
        try:
            final_timeout = float(timeout_raw)
        except ValueError:
            raise ValueError(
                f"Invalid CF_REQUEST_TIMEOUT '{timeout_raw}': must be a number of seconds"
            ) from None
    elif "request_timeout" in fb:
        final_timeout = float(fb["request_timeout"])
    else:
        final_timeout = 30.0

    config = Config(
        account_id=final_account,
        namespace_id=final_namespace,
        api_token=final_token,
        request_timeout=final_timeout,
        debug=final_debug,
    )

    validate_config(config)

    return config
