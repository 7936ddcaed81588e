"""Tests for :mod:`vaanshika_auth`."""
