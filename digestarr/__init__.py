"""Digestarr: a newsletter for Sonarr, Radarr and Trakt."""

__version__ = "0.1.0"
