"""
SKIMGUARD - Local Threat Assessment & Custody Engine

Flask application and shared state.
"""

from __future__ import annotations

import queue
import sys

from flask import Flask, Response, jsonify

import config
from utils.constants import OBSERVATION_QUEUE_MAX_SIZE
from utils.database import init_db
from utils.skimguard.service import SkimGuardService, create_service
from utils.skimguard.signal import ObservationTracker


# Create Flask app
app = Flask(__name__)

# ============================================
# SHARED SCAN STATE
# ============================================

# Raw observations from the wireless scanner, consumed by the tracker
observation_queue: queue.Queue = queue.Queue(maxsize=OBSERVATION_QUEUE_MAX_SIZE)
scan_tracker = ObservationTracker()

# Built in main() (or by tests) once the database exists
skim_service: SkimGuardService | None = None


# ============================================
# MAIN ROUTES
# ============================================

@app.route('/health')
def health() -> Response:
    return jsonify({'status': 'healthy', 'version': config.VERSION})


def create_app(service: SkimGuardService | None = None) -> Flask:
    """Initialize storage, build the service and register blueprints."""
    global skim_service

    init_db()
    skim_service = service or create_service()

    from routes import register_blueprints
    register_blueprints(app, skim_service, scan_tracker, observation_queue)
    return app


def main() -> None:
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(
        description='SKIMGUARD - Local Threat Assessment & Custody Engine',
        epilog='Environment variables: SKIMGUARD_HOST, SKIMGUARD_PORT, SKIMGUARD_DEBUG, '
               'SKIMGUARD_LOG_LEVEL, SKIMGUARD_DB_PATH, SKIMGUARD_KEY_PATH, SKIMGUARD_SYNC_URL'
    )
    parser.add_argument(
        '-p', '--port',
        type=int,
        default=config.PORT,
        help=f'Port to run server on (default: {config.PORT})'
    )
    parser.add_argument(
        '-H', '--host',
        default=config.HOST,
        help=f'Host to bind to (default: {config.HOST})'
    )
    parser.add_argument(
        '-d', '--debug',
        action='store_true',
        default=config.DEBUG,
        help='Enable debug mode'
    )
    parser.add_argument(
        '--check-sync',
        action='store_true',
        help='Check the sync server and exit'
    )
    args = parser.parse_args()

    config.configure_logging()
    create_app()

    # Check sync server only
    if args.check_sync:
        client = skim_service.sync_client
        if client is None:
            print("Sync is not configured (set SKIMGUARD_SYNC_URL)")
            sys.exit(1)
        healthy = client.health_check()
        print(f"{'✓' if healthy else '✗'} {client.base_url}")
        sys.exit(0 if healthy else 1)

    print("=" * 50)
    print("  SKIMGUARD // Local Threat Assessment")
    print("  Classify / Score / Custody / Sync")
    print("=" * 50)
    print()
    print(f"Open http://localhost:{args.port} in your browser")
    print()
    print("Press Ctrl+C to stop")
    print()

    app.run(host=args.host, port=args.port, debug=args.debug, threaded=True)


if __name__ == '__main__':
    main()
