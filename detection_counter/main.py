"""Entry point for the detection counter."""

import argparse
import sys
import threading
from typing import List, Optional

from .config_manager import ConfigManager
from .logging_config import setup_logging, get_logger
from .services.classifier import TFLiteImageClassifier
from .services.error_handler import ClassifierLoadError
from .services.frame_capture import OpenCVFrameSource
from .services.model_manager import ModelManager
from .session_controller import SessionController


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Count detections of a target label from a camera or uploads")
    parser.add_argument("--config", default=None, help="Path to config.json")
    parser.add_argument("--log-level", default=None, help="Override configured log level")
    parser.add_argument("--mode", choices=["streaming", "single_shot"], default=None,
                        help="Override the initial mode")
    parser.add_argument("--no-web", action="store_true", help="Do not start the web API")
    return parser.parse_args(argv)


def build_session(config_manager: ConfigManager) -> SessionController:
    """Wire classifier, frame source and session from configuration."""
    config = config_manager.get_config()
    logger = get_logger("main")

    model_manager = ModelManager()
    try:
        labels = model_manager.resolve_labels(config.labels_path, config.model_url)
    except ClassifierLoadError as e:
        logger.error(f"Could not resolve labels: {e}")
        labels = []

    classifier = TFLiteImageClassifier(config.model_path, labels, num_threads=config.num_threads)
    frame_source = OpenCVFrameSource(
        camera_index=config.camera_index,
        resolution=(config.frame_width, config.frame_height),
        mirror=config.mirror_frames
    )
    return SessionController(classifier, frame_source, config_manager=config_manager)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    config_manager = ConfigManager(args.config)
    if args.mode:
        config_manager.get_config().initial_mode = args.mode
    config = config_manager.get_config()

    setup_logging(args.log_level or config.log_level, config.log_dir)
    logger = get_logger("main")

    if not config_manager.validate_config():
        logger.error(f"Invalid configuration in {config_manager.config_path}")
        return 1

    session = build_session(config_manager)
    try:
        if not session.start():
            logger.error(f"Classifier failed to load: {session.model_error}")
            return 1

        if args.no_web:
            logger.info("Running without web interface; press Ctrl+C to stop")
            threading.Event().wait()
        else:
            from .web.app import DetectionWebApp
            DetectionWebApp(session).run(host=config.web_host, port=config.web_port)

        return 0

    except KeyboardInterrupt:
        logger.info("Received shutdown signal")
        return 0

    finally:
        session.teardown()


if __name__ == "__main__":
    sys.exit(main())
