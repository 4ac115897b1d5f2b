from .clients import Client
from .machines import Machine, MachineHistoryEntry
from .counters import (
    CounterObservation,
    InstallationObservation,
    CollectionObservation,
    MaintenanceObservation,
    TransferObservation,
    ManualObservation,
)
from .revenue import Collection
from .expenses import Expense
from .company import CompanyProfile

__all__ = [
    'Client',
    'Machine', 'MachineHistoryEntry',
    'CounterObservation', 'InstallationObservation', 'CollectionObservation',
    'MaintenanceObservation', 'TransferObservation', 'ManualObservation',
    'Collection',
    'Expense',
    'CompanyProfile',
]
