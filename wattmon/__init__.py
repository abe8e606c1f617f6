"""Configuration, time keeping and firmware release handling for an electric power monitor."""

__version__ = "0.1.0"