from .users import User, SessionToken
from .groups import Group, GroupMember, ChatMessage
from .bills import Bill, BillItem, BillSplit
from .notifications import Notification

__all__ = [
    'User', 'SessionToken',
    'Group', 'GroupMember', 'ChatMessage',
    'Bill', 'BillItem', 'BillSplit',
    'Notification',
]
