"""Core infrastructure for inkscreen: config, logging, errors, HTTP, time zones."""
