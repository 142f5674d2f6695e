"""Constants for the remote dimmer service."""

# Key-value store keys
REMOTE_DIMMER_CONFIG_KEY = "remote-dimmer-config"
INDIRECT_AUTH_PREFIX = "@"

# Host input events
INPUT_COMPONENT_PREFIX = "input:"

# Button map directions as written in the binding config
BUTTON_DIRECTION_UP = "up"
BUTTON_DIRECTION_DOWN = "down"

# Dimming modes per device
DIM_MODE_RAMP = "ramp"
DIM_MODE_STEP = "step"

# Default configuration paths
DEFAULT_CONFIG_FILE = "remote_dimmer.yaml"
DEFAULT_CONFIG_EXAMPLE_FILE = "remote_dimmer.yaml.example"
CONFIG_FILE_ENV = "REMOTE_DIMMER_CONFIG"

# Timing defaults (milliseconds unless noted)
LONG_PRESS_TIME_MS = 500
UPDATE_INTERVAL_MS = 250
DIMMER_STEP = 2
RAMP_STEP = 100
MINIMUM_BRIGHTNESS = 25

# Device HTTP API
LIGHT_ENDPOINT = "light/0"
KVS_GET_ENDPOINT = "rpc/KVS.Get"

# Timeouts (seconds)
DEVICE_REQUEST_TIMEOUT = 5.0
KVS_REQUEST_TIMEOUT = 5.0

# MQTT settings
MQTT_RPC_EVENTS_SUFFIX = "events/rpc"
MQTT_NOTIFY_STATUS_METHOD = "NotifyStatus"
MQTT_QOS = 1
MQTT_KEEPALIVE = 60
