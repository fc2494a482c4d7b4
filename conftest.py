"""
Pytest configuration for Django tests.
"""
import os

# pytest-django picks this up before the test database is created
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "wine_trade.settings")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
