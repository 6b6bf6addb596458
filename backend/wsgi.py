"""WSGI entry point for production servers, e.g. `gunicorn wsgi:app`."""
import os
from dotenv import load_dotenv

load_dotenv()

from attendance import create_app  # noqa: E402

app = create_app(os.getenv('FLASK_ENV', 'production'))
