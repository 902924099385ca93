"""Tests for the Global Caché integration."""
