import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "edge-redirect")

EDGE_CONFIG_FILE = os.environ.get("EDGE_CONFIG_FILE", "")
DEFAULT_RULES_FILE = os.environ.get("DEFAULT_RULES_FILE", "")

ORIGIN_SERVER_URL = os.environ.get("ORIGIN_SERVER_URL", "").rstrip("/")
PROXY_TIMEOUT = int(os.environ.get("PROXY_TIMEOUT", "30"))
# Scheme used when the edge computes the request origin from the Host header
ORIGIN_SCHEME = os.environ.get("ORIGIN_SCHEME", "https")

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")


def _split_list(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


ALLOWED_IPS = _split_list(os.environ.get("ALLOWED_IPS", ""))
BASIC_AUTH_REQUIRED_PATHS = _split_list(os.environ.get("BASIC_AUTH_REQUIRED_PATHS", ""))
BASIC_AUTH_ID = os.environ.get("BASIC_AUTH_ID", "")
BASIC_AUTH_PASSWORD = os.environ.get("BASIC_AUTH_PASSWORD", "")

# Unset means "take the value from EDGE_CONFIG_FILE"
REDIRECT_ENABLED = os.environ.get("REDIRECT_ENABLED")
REDIRECT_RULES_URL = os.environ.get("REDIRECT_RULES_URL")
REDIRECT_JSON_KEY = os.environ.get("REDIRECT_JSON_KEY")
REDIRECT_CACHE_TTL = os.environ.get("REDIRECT_CACHE_TTL")
REDIRECT_FETCH_TIMEOUT = os.environ.get("REDIRECT_FETCH_TIMEOUT")
