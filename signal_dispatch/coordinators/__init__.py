"""
Coordinators for signal dispatch.

- DispatchCoordinator: gate, admit, fan out, log and account one signal
"""

from signal_dispatch.coordinators.dispatch_coordinator import DispatchCoordinator

__all__ = ['DispatchCoordinator']
