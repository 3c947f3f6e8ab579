"""Timing constants for renderer supervision.

Values are in seconds unless the name says otherwise. They are the
defaults behind RendererSettings; override them there, not here.
"""

# =============================================================================
# Renderer Startup
# =============================================================================

RENDERER_STARTUP_TIMEOUT_S = 30.0
"""Maximum wait for the handshake line after spawning the renderer."""

# =============================================================================
# Protocol
# =============================================================================

RENDERER_READ_TIMEOUT_S = 120.0
"""Deadline for one response line. Large figures can take a while."""

# =============================================================================
# Retry and Backoff
# =============================================================================

RETRY_BASE_DELAY_MS = 0
"""Base cooldown after a failed start. 0 retries on every request."""

RETRY_MAX_DELAY_MS = 30000
"""Upper bound for the doubling cooldown."""

# =============================================================================
# Process Management
# =============================================================================

PROCESS_GRACEFUL_SHUTDOWN_TIMEOUT_S = 2.0
"""Wait after closing stdin before terminating the renderer."""

PROCESS_TERMINATE_TIMEOUT_S = 1.0
"""Timeout after terminate() before kill()."""

THREAD_JOIN_TIMEOUT_S = 1.0
"""Timeout for joining pipe reader threads."""

__all__ = [
    "RENDERER_STARTUP_TIMEOUT_S",
    "RENDERER_READ_TIMEOUT_S",
    "RETRY_BASE_DELAY_MS",
    "RETRY_MAX_DELAY_MS",
    "PROCESS_GRACEFUL_SHUTDOWN_TIMEOUT_S",
    "PROCESS_TERMINATE_TIMEOUT_S",
    "THREAD_JOIN_TIMEOUT_S",
]
