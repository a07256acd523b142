"""Tests for stepwise."""
