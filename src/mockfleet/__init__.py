"""MockFleet: a simulated fleet of compute nodes behind one control API."""

__version__ = "0.1.0"
