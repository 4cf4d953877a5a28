"""Week view arithmetic for the calendar."""
