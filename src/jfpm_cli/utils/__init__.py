"""Utility helpers for jfpm."""
