"""Schedule monitor: keeps declared scheduled tasks in sync with a remote monitor."""
