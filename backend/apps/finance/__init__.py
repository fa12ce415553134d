# backend/apps/finance/__init__.py

"""
Finance module: estimates with priced options, invoices and payments
"""
