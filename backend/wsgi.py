# backend/wsgi.py
from posengine import create_app

app = create_app()
