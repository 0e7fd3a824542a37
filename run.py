"""
Entry point for the Flask CLI and WSGI servers.

From the project root:

    flask --app run.py db migrate && flask --app run.py db upgrade
    flask --app run.py seed-counters
    flask --app run.py next-reference quotation --code CBL
    flask --app run.py --debug run

"""

from app import create_app

app = create_app()

if __name__ == "__main__":
    app.run(debug=True)
