"""Tiled OCR for tall comic strip images."""
