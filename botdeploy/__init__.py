"""Single-host provisioning for a PHP Telegram bot deployment."""

__version__ = "0.1.0"
