# backend/wsgi.py
from devtrack import create_app

app = create_app()
