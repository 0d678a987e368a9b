from flask import current_app, jsonify

from contact.errors import GameError, StaleStateError


def register_error_handlers(blueprint) -> None:
    """Render domain errors raised inside a blueprint's views as `{'error': message}`."""

    @blueprint.errorhandler(GameError)
    def handle_game_error(exc):
        return jsonify({'error': exc.message}), exc.status_code

    @blueprint.errorhandler(StaleStateError)
    def handle_stale(exc):
        current_app.logger.info(f"[stale] {exc}")
        return jsonify({'error': 'That action no longer applies'}), 409
