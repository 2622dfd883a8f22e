# backend/wsgi.py
from linato import create_app

app = create_app()
