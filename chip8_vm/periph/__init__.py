"""Framebuffer, keypad and timers."""
