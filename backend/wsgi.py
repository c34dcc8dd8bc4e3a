# backend/wsgi.py
from ricebook import create_app

app = create_app()
