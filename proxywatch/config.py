"""
Configuration file
"""

# Server Configuration
SERVER_DEFAULT_HOST = "127.0.0.1"
SERVER_DEFAULT_PORT = 8080
LOG_STREAM_PATH = "/ws/logs"

# Reconnect backoff (milliseconds)
RECONNECT_BASE_DELAY_MS = 1000
RECONNECT_MAX_DELAY_MS = 30000

# Log trigger configuration
# Matched against the human readable server log text, not a protocol event.
# Changing the wording of the server's log line breaks the refresh trigger.
TRIGGER_ENABLED = True
TRIGGER_MATCH = 'substring'  # 'exact' or 'substring'
PROXY_CREATED_MARKER = "Created proxy for"

# Display prefix stripped from original file paths in the proxy table
ARCHIVE_DISPLAY_PREFIX = "/media/nfs/video_archive/RecentImports/"

# HTTP request timeout for REST calls (milliseconds)
API_TIMEOUT_MS = 10000

# GUI Configuration
GUI_WIDTH = 1400
GUI_HEIGHT = 850
GUI_FONT = ('Consolas', 9)
