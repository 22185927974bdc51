"""Configuration constants for the record query server."""

HOST: str = "0.0.0.0"
PORT: int = 16166
MAX_CLIENTS: int = 8
BACKLOG: int = 5
BUFFER_SIZE: int = 1024
SOCKET_TIMEOUT_SECS: int = 5
PROMPT: str = "server> "
HISTORY_SIZE: int = 500
LOG_FORMAT: str = "plain"
LOG_LEVEL: str = "info"
PARSE_FAILURE_MESSAGE: str = "Failed to parse user input for invalid command or info."
EXECUTION_FAILURE_MESSAGE: str = "Internal error while executing command."
