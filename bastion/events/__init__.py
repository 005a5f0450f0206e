"""
Bastion - Events Package
========================

Event handler Cogs. Each module exposes `setup(bot)` and is loaded with
load_extension().

    - audit_log.py: Audit log routing to the protection dispatcher
    - cache.py: Deleted channels/roles fed to the object cache
    - members.py: Member join/leave/update
    - invites.py: Invite create/delete
    - activity.py: Message edit/delete and voice state logging
"""

EVENT_COGS = [
    "bastion.events.audit_log",
    "bastion.events.cache",
    "bastion.events.members",
    "bastion.events.invites",
    "bastion.events.activity",
]


__all__ = [
    "EVENT_COGS",
]
