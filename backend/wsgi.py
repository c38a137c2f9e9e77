# backend/wsgi.py
from docregistry import create_app

app = create_app()
