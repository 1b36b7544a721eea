# =======================================================================================
# vehicle_gate/__init__.py - Package Initialization
# =======================================================================================
"""
Vehicle Gate Agent

Supervises one RFID antenna over TCP, authorizes the tags it reads against an
access-control service, and drives the gate relay for authorized vehicles.
"""

__version__ = "1.0.0"
