from roomchat.models.conversation import Conversation, ConversationParticipant, ConversationType, Message
from roomchat.models.profile import Listing, Profile

__all__ = [
    "Conversation",
    "ConversationParticipant",
    "ConversationType",
    "Message",
    "Listing",
    "Profile",
]
