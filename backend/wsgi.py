# backend/wsgi.py
from doctrail import create_app

app = create_app()
