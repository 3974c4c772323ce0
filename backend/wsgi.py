# backend/wsgi.py
from pointonsale import create_app

app = create_app()
