# backend/wsgi.py
from theaterpos import create_app

app = create_app()
