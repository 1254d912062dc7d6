"""Relay device state events from AMQP into Redis."""

__version__ = "1.0.0"
