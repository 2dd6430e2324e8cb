from .queue_message import QueueMessage, Source, MessageType
from .passport import Passport
from .chat import ChatResponse

__all__ = ["QueueMessage", "Source", "MessageType", "Passport", "ChatResponse"]
