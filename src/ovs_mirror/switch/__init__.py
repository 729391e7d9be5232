"""Switch control implementations."""
from .base import MirrorSpec, SwitchControl, SwitchMirror
from .ovs import OVSSwitch

__all__ = [
    "MirrorSpec",
    "SwitchControl",
    "SwitchMirror",
    "OVSSwitch",
]
