# backend/wsgi.py
from splitledger import create_app

app = create_app()
