"""Client module - Profile selection, sync pipeline, transport and CLI."""
