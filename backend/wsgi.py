# backend/wsgi.py
from komepos import create_app

app = create_app()
