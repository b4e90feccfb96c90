# backend/wsgi.py
from bazaar import create_app

app = create_app()
