"""
Bastion - Protection Package
============================

Anti-nuke engine: trust resolution, violation ledger, revert executor
and the per-module pipeline.
"""

from .constants import (
    DANGEROUS_PERMISSIONS,
    PROTECTION_MODULES,
    ModuleType,
    PunishmentType,
    SubAction,
    WhitelistLevel,
)
from .settings import ModuleConfig, ModuleSettings, load_enabled_config, load_module_config
from .cache import ObjectCache, ObjectCacheSweeper
from .trust import TrustResolver
from .ledger import ViolationLedger, ViolationOutcome, ViolationResult
from .revert import RevertExecutor
from .modules import ProtectedAction, ProtectionModule, RevertOutcome, build_registry
from .pipeline import PipelineOutcome, ProtectionDispatcher, ProtectionPipeline

__all__ = [
    "DANGEROUS_PERMISSIONS",
    "PROTECTION_MODULES",
    "ModuleType",
    "PunishmentType",
    "SubAction",
    "WhitelistLevel",
    "ModuleConfig",
    "ModuleSettings",
    "load_enabled_config",
    "load_module_config",
    "ObjectCache",
    "ObjectCacheSweeper",
    "TrustResolver",
    "ViolationLedger",
    "ViolationOutcome",
    "ViolationResult",
    "RevertExecutor",
    "ProtectedAction",
    "ProtectionModule",
    "RevertOutcome",
    "build_registry",
    "PipelineOutcome",
    "ProtectionDispatcher",
    "ProtectionPipeline",
]
