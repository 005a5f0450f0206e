"""
Bastion - Utilities Package
===========================

Small helpers shared by services and commands.
"""
