"""Constants for the HuiHuTong integration.

This module contains the constants used throughout the integration,
including API endpoints, refresh bounds, configuration keys and the
apartment catalogue.
"""

DOMAIN = "huihutong"

BASE_URL = "https://api.215123.cn"
USER_AGENT = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Mobile/15E148 MicroMessenger/8.0.40"
)

PATH_CERTIFICATE_LOGIN = "/web-app/auth/certificateLogin"
PATH_MAKE_QRCODE = "/pms/welcome/make-qrcode"
PATH_MAKE_CODE_INFO = "/pms/welcome/make-code-info"
PATH_LOGIN_INFO = "/pms/welcome/login-info"
PATH_LIST_BUILDING = "/proxy/qy/sdcz/listBuilding"
PATH_LIST_FLOOR = "/proxy/qy/sdcz/listFloor"
PATH_LIST_ROOM = "/proxy/qy/sdcz/listRoom"
PATH_ROOM_BALANCE = "/proxy/qy/sdcz/getRoomBalance"

HEADER_SATOKEN = "satoken"

DEFAULT_REQUEST_TIMEOUT = 5.0  # Seconds, per HTTP call
PROFILE_REFRESH_TIMEOUT = 5.0

DEFAULT_REFRESH_INTERVAL = 15
MIN_REFRESH_INTERVAL = 5
MAX_REFRESH_INTERVAL = 300
RETRY_BACKOFF = 5  # Floor for every retry delay
MAX_RETRY_BACKOFF = 60

DEFAULT_SCALE_FACTOR = 1.0
MIN_SCALE_FACTOR = 0.4
MAX_SCALE_FACTOR = 1.0
QR_BOX_SIZE = 10
QR_BORDER = 2

BALANCE_POLL_INTERVAL = 1800

APPLICATION_SUCCESS_CODE = 200
APPLICATION_AUTH_CODES = frozenset({401})

STORAGE_VERSION = 1

CONF_OPENID = "openid"
CONF_REFRESH_INTERVAL = "refresh_interval"
CONF_SCALE_FACTOR = "scale_factor"
CONF_STARTUP_VIEW = "startup_view"
CONF_COLOR_MODE = "color_mode"
CONF_APARTMENT = "apartment"
CONF_BUILDING = "building"
CONF_FLOOR = "floor"
CONF_ROOM = "room"

STARTUP_VIEWS = ["access", "utility", "profile", "about"]
COLOR_MODES = ["system", "light", "dark"]

APARTMENTS = {
    1: "文星学生公寓",
    2: "文荟学生公寓",
    3: "文萃学生公寓",
    4: "文华人才公寓",
    5: "文缘学生公寓",
}

EVENT_IDENTITY_CHANGED = "identity_changed"
EVENT_REFRESH_INTERVAL_CHANGED = "refresh_interval_changed"
EVENT_SCALE_FACTOR_CHANGED = "scale_factor_changed"
EVENT_COLOR_MODE_CHANGED = "color_mode_changed"
EVENT_SELECTION_CHANGED = "selection_changed"

EVENT_ACCESS_CODE_DISPLAYED = f"{DOMAIN}_access_code_displayed"

STATUS_IDLE = "Idle"
STATUS_MISSING_IDENTITY = "Set an OpenID first"
STATUS_UPDATING = "Updating access code..."
STATUS_UPDATED = "Access code updated, tap to refresh"
STATUS_FAILED = "Update failed, tap to retry"
STATUS_RETRYING = "Update failed, retrying in {delay}s"

ERROR_INVALID_AUTH = "invalid_auth"
ERROR_CANNOT_CONNECT = "cannot_connect"
ERROR_TIMEOUT = "timeout_error"
ERROR_API_ERROR = "api_error"
ERROR_UNKNOWN = "unknown_error"
ERROR_INVALID_OPENID = "invalid_openid"
ERROR_NO_ENTRIES = "no_entries"
