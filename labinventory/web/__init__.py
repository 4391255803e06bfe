# Lab Inventory Web Application
# =============================
# Flask application factory, REST API and Google login.

from labinventory.web.app import create_app

__all__ = ['create_app']
