"""Building blocks for proxy servers: SOCKS5 helpers, concurrency utilities, caches, dial-failure tracking and a RabbitMQ pool."""

__version__ = "0.1.0"