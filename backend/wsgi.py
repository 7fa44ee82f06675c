# backend/wsgi.py
from ledgerdesk import create_app

app = create_app()
