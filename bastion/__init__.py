"""
Bastion - Source Package
========================

Guild-protection ("anti-nuke") bot for Discord. Watches privileged
audit-log events, decides whether the actor is trusted and, when not,
escalates through a punishment ladder and reverts the damage.

Package Structure:
- bot.py: Bot class, service wiring and lifecycle
- core/: Configuration, logging and the SQLite database layer
- services/: Trust, ledger, revert, invite tracking and background workers
- events/: Gateway event cogs that feed the services
- commands/: Administrator slash commands
- utils/: Small shared helpers

Version: v1.0.0
"""
