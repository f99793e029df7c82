import pika.exceptions

NOT_FOUND = 404


class HarnessConfigError(Exception):
    """Raised when the harness is misconfigured or cannot reach the broker."""

    def __init__(self, message: str):
        super().__init__(f"[amqp] {message}")


def is_not_found(exc: Exception) -> bool:
    """True when the broker closed the channel because the entity is missing."""
    return (
        isinstance(exc, pika.exceptions.ChannelClosedByBroker)
        and exc.reply_code == NOT_FOUND
    )
