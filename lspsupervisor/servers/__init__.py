"""Server process location, launching and session management."""
