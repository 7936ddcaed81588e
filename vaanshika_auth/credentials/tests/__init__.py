"""Tests for :mod:`vaanshika_auth.credentials`."""
