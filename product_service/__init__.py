"""Product catalog service with RabbitMQ event distribution."""

__version__ = "1.0.0"
