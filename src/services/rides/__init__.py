# src/services/rides/__init__.py
"""
Rides Service: поездки, поиск и бронирования.
"""
