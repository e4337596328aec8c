"""
Configuration constants for the waste sorting station.

All tunable defaults in one place. Runtime copies live in params.Parameters.
Times are in seconds, distances in centimetres.
"""

# =============================================================================
# DEVICES
# =============================================================================

# Controller (ESP32: ultrasonic sensor, bin sensors, sorting actuators)
DEFAULT_CONTROLLER_ADDRESS = "192.168.1.101"

# Camera (ESP32-CAM MJPEG stream)
DEFAULT_CAMERA_ADDRESS = ""

# Deployment mode: "development" talks to the controller directly and falls
# back to the proxy; "production" always goes through the proxy
DEFAULT_MODE = "development"
MODES = ("development", "production")

# Same-origin reverse proxy that forwards to the controller
DEFAULT_PROXY_URL = "http://localhost:3000/api/esp32"

# Controller commands accepted by POST /control
SORT_COMMANDS = ("biodegradable", "plastic", "recyclable")
CONTROL_COMMANDS = SORT_COMMANDS + ("stop", "force_detection", "reset_detection")

# =============================================================================
# INFERENCE API
# =============================================================================

DEFAULT_INFERENCE_URL = "https://detect.roboflow.com"

CONFIDENCE_FLOOR = 0.2  # Below this a prediction is discarded entirely
ACTUATION_THRESHOLD = 0.6  # At or above this a prediction may trigger sorting
OVERLAP_THRESHOLD = 0.5

UPLOAD_JPEG_QUALITY = 80

# =============================================================================
# NETWORK
# =============================================================================

REQUEST_TIMEOUT = 10.0
STREAM_READ_TIMEOUT = 10.0
STREAM_CHUNK_SIZE = 8192
MJPEG_MAX_BUFFER = 2 * 1024 * 1024  # Drop buffered bytes past this without a frame

# =============================================================================
# TIMING
# =============================================================================

SENSOR_POLL_INTERVAL = 1.0
BIN_POLL_INTERVAL = 2.0
STATUS_POLL_INTERVAL = 10.0
DETECTION_INTERVAL = 1.0
COUNTDOWN_INTERVAL = 1.0
WATCHDOG_INTERVAL = 1.0
JANITOR_INTERVAL = 1.0

SENSOR_COOLDOWN = 60.0  # Minimum gap between sensor-triggered stream starts
DETECTION_COOLDOWN = 10.0  # Minimum gap between sort commands
STREAM_TIMEOUT = 30.0  # Maximum stream duration
GRACE_PERIOD = 5.0  # Object must stay gone this long before the stream stops
RECONNECT_DELAY = 3.0
POST_TRIGGER_STOP = 2.0  # Let the sorter take the object before the camera stops
CLEAR_DELAY = 0.1  # Gap between clearing a source and assigning the next one
FRAME_WAIT = 3.0  # Max wait for a decodable frame before a detection
FRAME_SETTLE = 0.1

# =============================================================================
# BINS
# =============================================================================

BIN_EMPTY_DISTANCE = 59.0
BIN_NEARLY_FULL_DISTANCE = 15.0
BIN_FULL_DISTANCE = 10.0

BIN_LABELS = {"bin1": "Recyclable", "bin2": "Non-Bio"}

# =============================================================================
# OVERLAY
# =============================================================================

DISPLAY_TIME = 3.0  # How long a detection box stays on screen
FADE_TIME = 1.0  # Boxes fade out over the last second
RENDER_HZ = 30

# Colors (BGR)
BIO_COLOR = (0, 255, 0)
PLASTIC_COLOR = (0, 0, 255)
RECYCLE_COLOR = (255, 102, 0)
LABEL_TEXT_COLOR = (255, 255, 255)

BOX_THICKNESS = 3
LABEL_HEIGHT = 20
LABEL_FONT_SCALE = 0.5

# =============================================================================
# OPERATOR
# =============================================================================

EVENT_LOG_SIZE = 10

WEB_HOST = "0.0.0.0"
WEB_PORT = 8080
OVERLAY_STREAM_FPS = 15
