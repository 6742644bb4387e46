class CmdQueueError(Exception):
    pass


class ConfigurationError(CmdQueueError):
    pass


class SetupError(CmdQueueError):
    pass


class OwnershipError(CmdQueueError):
    pass


class ChannelError(CmdQueueError):
    pass


class MessageTooLargeError(ChannelError):
    pass


class MalformedSubmissionError(ChannelError):
    pass


class QueueFullError(CmdQueueError):
    pass


class ShuttingDownError(CmdQueueError):
    pass


class ReceiverGoneError(ChannelError):
    pass
