"""Before-notify middleware."""
