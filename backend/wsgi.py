# backend/wsgi.py
from abaya_pos import create_app

app = create_app()
