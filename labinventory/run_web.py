#!/usr/bin/env python
"""
Lab Inventory Web Server
========================
Entry point for running the inventory REST API.

Usage:
    labinventory-web                      # Start on default port 5000
    labinventory-web --port 8080          # Start on custom port
    labinventory-web --debug              # Enable debug mode
    labinventory-web --database-url sqlite:///lab.db

The API will be available at http://localhost:5000/api/
"""

import argparse
import logging
import os

from labinventory.config import get_settings


def main():
    parser = argparse.ArgumentParser(
        description="Run the Lab Inventory Web Server"
    )
    parser.add_argument(
        '--port', '-p',
        type=int,
        default=5000,
        help='Port to run the server on (default: 5000)'
    )
    parser.add_argument(
        '--host', '-H',
        default='127.0.0.1',
        help='Host to bind to (default: 127.0.0.1)'
    )
    parser.add_argument(
        '--debug', '-d',
        action='store_true',
        help='Enable debug mode with auto-reload'
    )
    parser.add_argument(
        '--database-url',
        default=None,
        help='SQLAlchemy database URL (default: DATABASE_URL or SQLite in the package folder)'
    )

    args = parser.parse_args()
    settings = get_settings()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else getattr(logging, settings.log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if args.debug:
        # Allow OAuth over plain HTTP for local development only
        os.environ.setdefault('OAUTHLIB_INSECURE_TRANSPORT', '1')

    database_url = args.database_url or settings.database_url
    print(f"""
  Lab Inventory Web Server

  Database: {database_url}
  Server:   http://{args.host}:{args.port}
  Debug:    {'Enabled' if args.debug else 'Disabled'}
  Google:   {'Enabled' if settings.google_oauth_enabled else 'Disabled (GOOGLE_OAUTH_CLIENT_ID not set)'}

  Press Ctrl+C to stop the server.
""")

    from labinventory.web import create_app
    app = create_app(database_url=database_url)
    app.run(
        host=args.host,
        port=args.port,
        debug=args.debug
    )


if __name__ == '__main__':
    main()
