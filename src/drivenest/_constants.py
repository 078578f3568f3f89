"""Internal constants shared across the library."""

ATTRIBUTION_URL = "https://gcdsdk.appsflyer.com/install_data/v4.0"
USER_AGENT = "drivenest/1.0"

# ------------------------------------------------------------------
# Persisted keys (string-keyed store)
# ------------------------------------------------------------------

KEY_HAS_LAUNCHED_BEFORE = "hasLaunchedBefore"
KEY_APP_STATE = "app_state"
KEY_STORED_CONFIG = "stored_config"
KEY_TEMP_URL = "temp_url"
KEY_LAST_PERM_REQUEST = "last_perm_request"
KEY_PERMS_ACCEPTED = "perms_accepted"
KEY_PERMS_DENIED = "perms_denied"
KEY_PUSH_TOKEN = "push_token"
KEY_FCM_TOKEN = "fcm_token"
KEY_COOKIES = "preserved_grains"

# ------------------------------------------------------------------
# Timing
# ------------------------------------------------------------------

IGNITION_DELAY_S: float = 5.0
MERGE_DEBOUNCE_S: float = 10.0
PERMISSION_COOLDOWN_S: float = 3 * 24 * 3600  # 259 200

# ------------------------------------------------------------------
# Content host
# ------------------------------------------------------------------

REDIRECT_LIMIT = 70
INTERNAL_SCHEMES: frozenset[str] = frozenset({"http", "https", "about", "blob", "data", "javascript", "file"})
INTERNAL_PREFIXES: tuple[str, ...] = ("srcdoc", "about:blank", "about:srcdoc")

# Attribution key carrying the install type ("Organic" / "Non-organic").
AF_STATUS_KEY = "af_status"
ORGANIC_STATUS = "organic"

# Keys a deferred deep link may carry its destination under, in priority order.
DEEP_LINK_URL_KEYS: tuple[str, ...] = ("deep_link_value", "url", "link")
