"""dzsa-sync - keep DayZ servers registered with the DZSA launcher."""

__version__ = "0.1.0"
