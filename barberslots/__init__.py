"""
barberslots - availability and booking core for a barbershop.
"""

__version__ = "0.1.0"
