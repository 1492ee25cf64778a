"""Shop-floor job lifecycle and time-tracking service."""
