# backend/wsgi.py
from maleta import create_app

app = create_app()
