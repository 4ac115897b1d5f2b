# backend/wsgi.py
from coinop import create_app

app = create_app()
