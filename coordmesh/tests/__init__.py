"""Test suite for the coordination path toolkit."""
