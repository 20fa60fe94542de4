"""Small helpers shared across pulpa."""
