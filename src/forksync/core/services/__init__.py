"""
Service layer for forksync.

Services are stateless orchestrators over an explicit SyncContext. The CLI
(or any other interface) calls these instead of reaching into core
packages directly. No Rich, no sys.exit, no print statements.

Modules:
    hosts: HostService registers, verifies and removes hosting accounts.
    scan: ScanService discovers and reconciles repositories.
    sync: SyncService plans and executes fork syncs.
    status: StatusService provides grouped status and history.
"""

from forksync.core.services.hosts import HostService, HostVerification
from forksync.core.services.scan import ScanReport, ScanScope, ScanService
from forksync.core.services.status import StatusService
from forksync.core.services.sync import SyncService

__all__ = [
    "HostService",
    "HostVerification",
    "ScanReport",
    "ScanScope",
    "ScanService",
    "StatusService",
    "SyncService",
]
