"""Reconcilers and renderers for OAM scaling traits, with an in-memory
cluster client and a terraform addon UI schema generator."""

__version__ = "0.1.0"