"""
Entry point for Flask.

Usage (from project root):

    flask --app run.py --debug run

or, with the in-memory storage backend (no database needed):

    STORAGE_BACKEND=memory flask --app run.py run
"""

from trustcota import create_app

# WSGI application object. When you run `flask run`, Flask looks for this `app` variable.
app = create_app()

if __name__ == "__main__":
    # For direct `python run.py` usage (dev only) - use `flask run` or a WSGI server instead.
    app.run(debug=True)
