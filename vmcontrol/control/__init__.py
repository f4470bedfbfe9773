"""VM control: request shape, access strategies, backends and the facade."""

from .api import ManagementApiBackend
from .facade import VMControlFacade
from .request import ACTIONS, POWER_ACTIONS, FacadeRequest
from .strategies import DirectCall, RawCommand, TunneledCall, TunneledCommand
from .virsh import VirshBackend

__all__ = [
    "ACTIONS",
    "DirectCall",
    "FacadeRequest",
    "ManagementApiBackend",
    "POWER_ACTIONS",
    "RawCommand",
    "TunneledCall",
    "TunneledCommand",
    "VMControlFacade",
    "VirshBackend",
]
