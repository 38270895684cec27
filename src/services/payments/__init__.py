# src/services/payments/__init__.py
"""
Payments Service: платежи, выплаты и вебхуки платёжного шлюза.
"""
