"""Shared text utilities and word lists used across pipeline stages."""
