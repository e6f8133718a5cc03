"""Shared plumbing: config, errors, media model, polling, artwork, watchdog."""
