"""Powerbag content management backend."""
