"""
Message Queue Module

AMQP consumer bindings (pika) feeding the workers.
"""

from .amqp_consumer import AmqpConsumer, build_consumer_factory

__all__ = ["AmqpConsumer", "build_consumer_factory"]
