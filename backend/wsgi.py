# backend/wsgi.py
from assethub import create_app

app = create_app()
