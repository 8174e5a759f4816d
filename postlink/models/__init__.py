from postlink.models.chat import Chat
from postlink.models.notification import Notification
from postlink.models.request import DeliveryRequest, SendRequest
from postlink.models.response import Response
from postlink.models.user import User

__all__ = [
    "User",
    "SendRequest",
    "DeliveryRequest",
    "Response",
    "Chat",
    "Notification",
]
