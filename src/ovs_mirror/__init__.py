"""ovs-mirror - declarative Open vSwitch port mirroring.

Keeps the mirrors described in a rule file in sync with a live Open vSwitch
instance and re-applies them when the VMs that send or receive mirrored
traffic start and stop.
"""

__version__ = "0.1.0"
