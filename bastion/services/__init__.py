"""
Bastion - Services Package
==========================

Long-lived service objects wired up in bot.py.

DESIGN:
    Services own one concern each (protection pipeline, invite tracking,
    jail, action log, background workers). Event cogs and commands only
    call into them; they never talk to the database directly.
"""
