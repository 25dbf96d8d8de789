#!/usr/bin/env python3
"""
Scan Service - Flask endpoints for triggering scans and cleanups, and serving thumbnails
"""
import sqlite3
import logging
import threading
import time
from typing import Dict, Optional

from flask import Flask, jsonify, send_from_directory

from .config import Settings
from .database import CatalogDatabase
from .indexer import MediaIndexer, ScanInProgress, is_scan_running
from .reconciler import Reconciler

logger = logging.getLogger("server")


class ScanRunner:
    """Runs scans on a background thread and tracks their status."""

    def __init__(self, indexer: MediaIndexer):
        self.indexer = indexer
        # Progress still reaches any callback the indexer was built with
        self._forward_progress = indexer.progress_callback
        self.indexer.progress_callback = self._on_progress
        self.status = {'running': False, 'message': '', 'last_result': None}
        self._start_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    def start(self, trigger: str = "Manual") -> bool:
        """Start a scan unless one is already running."""
        with self._start_lock:
            if self.status['running'] or is_scan_running():
                return False
            self.status['running'] = True
            self.status['message'] = 'Starting scan...'
            self.indexer.reset_cancel()
            self._thread = threading.Thread(target=self._run, args=(trigger,), daemon=True)
            self._thread.start()
        return True

    def cancel(self) -> bool:
        if not self.status['running']:
            return False
        self.indexer.cancel()
        self.status['message'] = 'Cancelling...'
        return True

    def join(self, timeout: Optional[float] = None):
        """Wait for the current scan thread, if any."""
        if self._thread is not None:
            self._thread.join(timeout)

    def _run(self, trigger: str):
        try:
            logger.info(f"{trigger} scan triggered")
            stats = self.indexer.scan_and_index()
            if stats.already_running:
                self.status['message'] = 'Scan already in progress'
            else:
                self.status['last_result'] = stats.to_dict()
                self.status['message'] = 'Scan cancelled' if stats.cancelled else 'Scan complete'
            logger.info(f"{trigger} scan finished: {stats.channels} channels, {stats.videos} new videos")
        except Exception as e:
            logger.error(f"{trigger} scan failed: {e}")
            self.status['message'] = f'Error: {e}'
        finally:
            self.status['running'] = False

    def _on_progress(self, progress: Dict):
        self.status['message'] = (
            f"{progress['channel']}: {progress['processed']}/{progress['total']} "
            f"({progress['current_file']})"
        )
        if self._forward_progress:
            self._forward_progress(progress)


def create_app(settings: Optional[Settings] = None,
               db: Optional[CatalogDatabase] = None,
               indexer: Optional[MediaIndexer] = None) -> Flask:
    """Build the Flask app around one catalog and one scan runner."""
    settings = settings or Settings.from_env()
    db = db or CatalogDatabase(settings.db_path)
    indexer = indexer or MediaIndexer.from_settings(settings, db=db)
    runner = ScanRunner(indexer)
    reconciler = Reconciler(db)

    app = Flask(__name__)
    app.config['SETTINGS'] = settings
    app.extensions['scan_runner'] = runner

    @app.route('/api/scan', methods=['POST'])
    def api_scan():
        """Trigger a full media scan in the background."""
        if not runner.start("Manual"):
            return jsonify({'error': 'Scan already in progress'}), 400
        return jsonify({'message': 'Media scan started', 'status': 'running'}), 202

    @app.route('/api/scan/status')
    def api_scan_status():
        """Get scan status and catalog counts."""
        status = dict(runner.status)
        status['channels'] = db.count_channels()
        status['videos'] = db.count_videos()
        status['media_path'] = str(settings.media_path)
        return jsonify(status)

    @app.route('/api/scan/cancel', methods=['POST'])
    def api_scan_cancel():
        if not runner.cancel():
            return jsonify({'error': 'No scan in progress'}), 400
        return jsonify({'status': 'cancelling'})

    @app.route('/api/scan/cleanup', methods=['POST'])
    def api_cleanup():
        """Remove missing videos, then channels left empty."""
        try:
            result = reconciler.reconcile()
        except ScanInProgress:
            return jsonify({'error': 'Scan in progress'}), 409
        except sqlite3.Error as e:
            logger.error(f"Error during cleanup: {e}")
            return jsonify({'error': 'Failed to cleanup'}), 500
        result['message'] = 'Cleanup completed'
        return jsonify(result)

    @app.route('/api/statistics')
    def api_statistics():
        """Get catalog statistics."""
        return jsonify(db.get_statistics())

    def serve_thumbnail(filename):
        """Serve a generated thumbnail."""
        return send_from_directory(str(settings.thumbnail_path), filename, mimetype='image/jpeg')

    app.add_url_rule(f"{settings.thumbnail_url_prefix}/<path:filename>",
                     'thumbnail', serve_thumbnail)

    return app


def auto_scan_loop(runner: ScanRunner, interval: int):
    """Background thread that runs periodic scans."""
    logger.info(f"Auto-scan thread started (scans every {interval} seconds)")

    while True:
        time.sleep(interval)
        if not runner.start("Auto"):
            logger.info("Auto-scan skipped (scan already in progress)")


def serve(settings: Settings):
    """Run the HTTP service with the startup scan and optional auto-scan loop."""
    app = create_app(settings)
    runner = app.extensions['scan_runner']

    logger.info("=" * 70)
    logger.info("MyTube Scanner Starting")
    logger.info(f"Media root: {settings.media_path}")
    logger.info(f"Thumbnails: {settings.thumbnail_path}")
    logger.info(f"Database: {settings.db_path}")
    logger.info(f"Workers: {settings.scan_workers}")
    logger.info(f"Auto-scan interval: {settings.autoscan_interval or 'disabled'}")
    logger.info("=" * 70)

    if settings.scan_on_startup:
        runner.start("Startup")

    if settings.autoscan_interval > 0:
        scan_thread = threading.Thread(
            target=auto_scan_loop, args=(runner, settings.autoscan_interval), daemon=True
        )
        scan_thread.start()

    app.run(host=settings.host, port=settings.port, threaded=True)
