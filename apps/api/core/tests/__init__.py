"""Tests for the core package: config, errors, logging, storage, rate limiting."""
