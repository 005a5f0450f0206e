"""
Bastion - Commands Package
==========================

Slash command Cogs. Every command is administrator-only and guild-only.

Available Commands:
    /whitelist: Manage user and role whitelist entries
    /protection: Configure modules, log channels and the jail role
    /invites: Inviter statistics
    /ban, /kick, /timeout, /jail, /unjail: Moderation, timed bans and jails
        feed the expiry workers
    /setup: Step-by-step configuration session
"""

COMMAND_COGS = [
    "bastion.commands.whitelist",
    "bastion.commands.protection",
    "bastion.commands.invites",
    "bastion.commands.moderation",
    "bastion.commands.setup",
]
"""
List of command cog module paths for dynamic loading.

DESIGN:
    Bot iterates this list and calls load_extension() for each.
"""


__all__ = [
    "COMMAND_COGS",
]
