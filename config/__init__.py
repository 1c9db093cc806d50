"""Configuration helpers for the floor ranking application."""

# This package collects runtime configuration assets that can be customised
# without touching the application logic.  Individual modules provide
# structured accessors for specific domains (Supabase table names and the
# best-selection mark tables).
