"""Tests for aiee-team."""
