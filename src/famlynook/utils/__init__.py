"""Small helpers shared across the famlynook packages."""
