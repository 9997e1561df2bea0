"""Core types, configuration, logging and clocks."""
