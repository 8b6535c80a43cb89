# Overview: WSGI entrypoint; FLASK_APP target for the CLI and production servers.

from lilium import create_app

app = create_app()

if __name__ == "__main__":
    app.run(debug=True)
