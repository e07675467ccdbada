"""Utility helpers for rentcore."""
