# errors.py
# Failures raised by the transport and store collaborators


class TransportError(Exception):
    """A message-transport call failed."""


class RecipientBlocked(TransportError):
    """Recipient blocked the bot or no longer exists; not worth retrying."""


class MessageNotModified(TransportError):
    """Edit carried exactly the content the message already shows."""


class MessageGone(TransportError):
    """Target message was deleted or can no longer be edited."""


class StoreError(Exception):
    """Persistent store could not be read or written."""
