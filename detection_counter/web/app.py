"""Flask web application exposing the detection session."""

from typing import Optional

from flask import Flask, jsonify, request

from ..models.classification import Mode
from ..session_controller import SessionController
from ..services.error_handler import (
    ClassifierBusyError, ClassifierError, ClassifierNotReadyError,
    ImageUnavailableError, SessionModeError
)
from ..services.frame_capture import decode_image
from ..services.system_monitor import SystemMonitor
from ..logging_config import get_logger

logger = get_logger("web")


class DetectionWebApp:
    """Flask JSON API over a SessionController."""

    def __init__(self, session: SessionController,
                 system_monitor: Optional[SystemMonitor] = None):
        self.app = Flask(__name__)
        self.session = session
        self.system_monitor = system_monitor or SystemMonitor()

        self.app.config['MAX_CONTENT_LENGTH'] = session.config.max_upload_mb * 1024 * 1024

        self._setup_routes()

        logger.info("Detection web application initialized")

    def _setup_routes(self):
        """Setup Flask routes."""

        @self.app.route('/api/status')
        def api_status():
            """Get session snapshot and statistics."""
            try:
                return jsonify({
                    'success': True,
                    'data': self.session.get_status()
                })
            except Exception as e:
                logger.error(f"Error getting status: {e}")
                return jsonify({
                    'success': False,
                    'error': str(e)
                }), 500

        @self.app.route('/api/mode', methods=['POST'])
        def api_set_mode():
            """Switch between streaming and single-shot mode."""
            data = request.get_json(silent=True) or {}
            mode_value = data.get('mode')
            try:
                mode = Mode(mode_value)
            except ValueError:
                return jsonify({
                    'success': False,
                    'error': f"Invalid mode: {mode_value!r}"
                }), 400

            try:
                changed = self.session.set_mode(mode)
            except SessionModeError as e:
                return jsonify({'success': False, 'error': str(e)}), 409

            return jsonify({
                'success': True,
                'changed': changed,
                'data': self.session.get_snapshot().to_dict()
            })

        @self.app.route('/api/classify', methods=['POST'])
        def api_classify():
            """Classify an uploaded image (single-shot mode)."""
            upload = request.files.get('image')
            if upload is None:
                return jsonify({
                    'success': False,
                    'error': 'No image provided'
                }), 400

            try:
                image = decode_image(upload.read())
                top = self.session.submit_image(image)
            except ImageUnavailableError as e:
                return jsonify({'success': False, 'error': str(e)}), 400
            except (SessionModeError, ClassifierBusyError) as e:
                return jsonify({'success': False, 'error': str(e)}), 409
            except ClassifierNotReadyError as e:
                return jsonify({'success': False, 'error': str(e)}), 503
            except ClassifierError as e:
                logger.error(f"Classification failed: {e}")
                return jsonify({'success': False, 'error': str(e)}), 500

            snapshot = self.session.get_snapshot()
            return jsonify({
                'success': True,
                'data': {
                    'label': top.label,
                    'probability': top.probability,
                    'display_label': top.display(),
                    'positive': self.session.aggregator.is_positive(top),
                    'count': snapshot.count
                }
            })

        @self.app.route('/api/events')
        def api_events():
            """Get recent detection events."""
            limit = request.args.get('limit', 10, type=int)
            events = self.session.get_recent_events(limit)
            return jsonify({
                'success': True,
                'data': [event.to_dict() for event in events]
            })

        @self.app.route('/api/reset', methods=['POST'])
        def api_reset():
            """Start a fresh count."""
            self.session.reset()
            return jsonify({
                'success': True,
                'data': self.session.get_snapshot().to_dict()
            })

        @self.app.route('/api/config', methods=['GET'])
        def api_get_config():
            """Get current configuration."""
            return jsonify({
                'success': True,
                'data': self.session.config.to_dict()
            })

        @self.app.route('/api/config', methods=['POST'])
        def api_update_config():
            """Update configuration."""
            data = request.get_json(silent=True)
            if not data:
                return jsonify({
                    'success': False,
                    'error': 'No data provided'
                }), 400

            try:
                self.session.update_configuration(**data)
            except (TypeError, ValueError) as e:
                return jsonify({'success': False, 'error': str(e)}), 400

            return jsonify({
                'success': True,
                'message': 'Configuration updated successfully'
            })

        @self.app.route('/api/health')
        def api_health():
            """Model readiness, error statistics and host resources."""
            snapshot = self.session.get_snapshot()
            return jsonify({
                'success': True,
                'data': {
                    'healthy': snapshot.model_ready and snapshot.model_error is None,
                    'model_ready': snapshot.model_ready,
                    'model_error': snapshot.model_error,
                    'errors': self.session.error_handler.get_error_stats(),
                    'system': self.system_monitor.get_system_stats()
                }
            })

    def run(self, host='0.0.0.0', port=5000, debug=False):
        """Run the Flask application."""
        logger.info(f"Starting web interface on {host}:{port}")
        self.app.run(host=host, port=port, debug=debug, threaded=True, use_reloader=False)


def create_app(session: SessionController) -> Flask:
    """Factory function to create Flask app."""
    return DetectionWebApp(session).app
