"""Command-line entry points for the Snowflake writer."""
