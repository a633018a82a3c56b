"""Utility helpers (formatting, logging setup, PDF in/out)."""
