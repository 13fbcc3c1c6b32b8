# Routes package - registers all blueprints with the Flask app

def register_blueprints(app, skim_service, scan_tracker, observation_queue):
    """Register all route blueprints with the Flask app."""
    from .skimguard import skimguard_bp, init_skimguard_state

    if 'skimguard' not in app.blueprints:
        app.register_blueprint(skimguard_bp)

    # Initialize SkimGuard state with service, tracker and queue from app
    init_skimguard_state(skim_service, scan_tracker, observation_queue)
