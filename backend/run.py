"""Development server entry point: `python run.py` or `flask --app run run`."""
import os
from dotenv import load_dotenv

load_dotenv()

from attendance import create_app  # noqa: E402  (config reads the environment at import)

app = create_app(os.getenv('FLASK_ENV', 'development'))

if __name__ == '__main__':
    app.run(
        host=os.environ.get('HOST', '127.0.0.1'),
        port=int(os.environ.get('PORT', 5000)),
        debug=app.config.get('DEBUG', False),
    )
